"""
Core data models for the Agent0 search engine.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union, Literal


# Type aliases
AgentId = str  # "chainId:tokenId" (e.g., "8453:1234") or just tokenId when chain is implicit
ChainId = int  # also the SourceId: one chain == one registry + its subgraph
Address = str  # 0x-hex
URI = str  # https://... or ipfs://...
Timestamp = int  # unix seconds


class TrustModel(Enum):
    """Trust models an agent can advertise."""
    REPUTATION = "reputation"
    CRYPTO_ECONOMIC = "crypto-economic"
    TEE_ATTESTATION = "tee-attestation"


def _to_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """Subgraph BigInt fields arrive as strings."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_tuple(value: Any) -> Tuple[Any, ...]:
    if not value:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


class ExtensionMap(Mapping):
    """Read-only map of extension fields with typed accessors.

    Accessors return None for a missing key and for a value of the wrong
    type; they never raise.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data = dict(data or {})

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExtensionMap):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"ExtensionMap({self._data!r})"

    def get_str(self, key: str) -> Optional[str]:
        value = self._data.get(key)
        return value if isinstance(value, str) else None

    def get_int(self, key: str) -> Optional[int]:
        value = self._data.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value

    def get_bool(self, key: str) -> Optional[bool]:
        value = self._data.get(key)
        return value if isinstance(value, bool) else None

    def get_list(self, key: str) -> Optional[List[Any]]:
        value = self._data.get(key)
        if isinstance(value, (list, tuple)):
            return list(value)
        return None

    def richness(self) -> int:
        """Number of entries carrying a non-empty value."""
        return sum(1 for value in self._data.values() if value not in (None, "", [], (), {}))

    def with_updates(self, **updates: Any) -> ExtensionMap:
        merged = dict(self._data)
        merged.update(updates)
        return ExtensionMap(merged)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)


# registrationFile keys mapped onto AgentRecord fields; anything else lands in extras
_REGISTRATION_FIELDS = {
    "id", "agentId", "name", "description", "image", "active", "x402support",
    "supportedTrusts", "ens", "did", "agentWallet", "mcpTools", "mcpPrompts",
    "mcpResources", "a2aSkills",
}


@dataclass(frozen=True)
class AgentRecord:
    """Canonical, immutable projection of one agent as seen through one source."""
    chainId: ChainId
    agentId: AgentId
    tokenId: str
    name: str = ""
    description: str = ""
    image: Optional[URI] = None
    mcp: bool = False
    a2a: bool = False
    ens: Optional[str] = None
    did: Optional[str] = None
    walletAddress: Optional[Address] = None
    supportedTrusts: Tuple[str, ...] = ()
    a2aSkills: Tuple[str, ...] = ()
    mcpTools: Tuple[str, ...] = ()
    mcpPrompts: Tuple[str, ...] = ()
    mcpResources: Tuple[str, ...] = ()
    owners: Tuple[Address, ...] = ()
    operators: Tuple[Address, ...] = ()
    active: bool = True
    x402support: bool = False
    createdAt: Timestamp = 0
    updatedAt: Timestamp = 0
    totalFeedback: int = 0
    lastActivity: Optional[Timestamp] = None
    extras: ExtensionMap = field(default_factory=ExtensionMap)

    @property
    def owner(self) -> Optional[Address]:
        return self.owners[0] if self.owners else None

    @property
    def identity_key(self) -> Tuple[int, Tuple[int, Any]]:
        """Deterministic tie-break key: (chainId, tokenId)."""
        if self.tokenId.isdigit():
            return (self.chainId, (0, int(self.tokenId)))
        return (self.chainId, (1, self.tokenId))

    @classmethod
    def from_subgraph(cls, agent_data: Dict[str, Any], chain_id: Optional[ChainId] = None) -> AgentRecord:
        """Create from a raw subgraph `Agent` entity."""
        reg_file = agent_data.get('registrationFile') or {}
        if not isinstance(reg_file, dict):
            reg_file = {}

        raw_id = str(agent_data.get('id') or "")
        chain = _to_int(agent_data.get('chainId'), None)
        if chain is None and ":" in raw_id:
            chain = _to_int(raw_id.split(":", 1)[0], None)
        if chain is None:
            chain = chain_id if chain_id is not None else 0

        token_id = agent_data.get('agentId')
        if token_id is None:
            token_id = raw_id.split(":", 1)[1] if ":" in raw_id else raw_id
        token_id = str(token_id)
        agent_id = raw_id if ":" in raw_id else f"{chain}:{token_id}"

        extras = {
            key: value for key, value in reg_file.items()
            if key not in _REGISTRATION_FIELDS and value is not None
        }

        owner = agent_data.get('owner')
        return cls(
            chainId=chain,
            agentId=agent_id,
            tokenId=token_id,
            name=reg_file.get('name') or f"Agent {agent_id}",
            description=reg_file.get('description') or "",
            image=reg_file.get('image'),
            mcp=reg_file.get('mcpEndpoint') is not None,
            a2a=reg_file.get('a2aEndpoint') is not None,
            ens=reg_file.get('ens'),
            did=reg_file.get('did'),
            walletAddress=reg_file.get('agentWallet'),
            supportedTrusts=_to_tuple(reg_file.get('supportedTrusts')),
            a2aSkills=_to_tuple(reg_file.get('a2aSkills')),
            mcpTools=_to_tuple(reg_file.get('mcpTools')),
            mcpPrompts=_to_tuple(reg_file.get('mcpPrompts')),
            mcpResources=_to_tuple(reg_file.get('mcpResources')),
            owners=(owner,) if owner else (),
            operators=_to_tuple(agent_data.get('operators')),
            active=bool(reg_file.get('active', True)),
            x402support=bool(reg_file.get('x402support', False)),
            createdAt=_to_int(agent_data.get('createdAt')),
            updatedAt=_to_int(agent_data.get('updatedAt')),
            totalFeedback=_to_int(agent_data.get('totalFeedback')),
            lastActivity=_to_int(agent_data.get('lastActivity'), None),
            extras=ExtensionMap(extras),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "chainId": self.chainId,
            "agentId": self.agentId,
            "name": self.name,
            "description": self.description,
            "image": self.image,
            "owners": list(self.owners),
            "operators": list(self.operators),
            "mcp": self.mcp,
            "a2a": self.a2a,
            "ens": self.ens,
            "did": self.did,
            "walletAddress": self.walletAddress,
            "supportedTrusts": list(self.supportedTrusts),
            "a2aSkills": list(self.a2aSkills),
            "mcpTools": list(self.mcpTools),
            "mcpPrompts": list(self.mcpPrompts),
            "mcpResources": list(self.mcpResources),
            "active": self.active,
            "x402support": self.x402support,
            "createdAt": self.createdAt,
            "updatedAt": self.updatedAt,
            "totalFeedback": self.totalFeedback,
            "lastActivity": self.lastActivity,
            "extras": self.extras.to_dict(),
        }


_EMPTY_TAG = "0x" + "00" * 32


def _decode_tag(tag: Any) -> Optional[str]:
    """Decode a tag that may be a hex bytes32 (on-chain format) or a plain string."""
    if not tag or not isinstance(tag, str) or tag == _EMPTY_TAG:
        return None
    if not tag.startswith("0x"):
        return tag
    try:
        decoded = bytes.fromhex(tag[2:]).rstrip(b'\x00').decode('utf-8', errors='ignore')
    except ValueError:
        return None
    return decoded or None


@dataclass(frozen=True)
class FeedbackRecord:
    """One reputation entry.

    capability/skill/task/name come from the off-chain feedback file and are
    only ever used to filter, never to score.
    """
    id: str
    agentId: AgentId
    reviewer: Address
    score: int = 0
    tag1: Optional[str] = None
    tag2: Optional[str] = None
    isRevoked: bool = False
    capability: Optional[str] = None
    skill: Optional[str] = None
    task: Optional[str] = None
    name: Optional[str] = None
    text: Optional[str] = None
    fileURI: Optional[URI] = None
    createdAt: Timestamp = 0

    @property
    def tags(self) -> List[str]:
        return [tag for tag in (self.tag1, self.tag2) if tag]

    @classmethod
    def from_subgraph(cls, feedback_data: Dict[str, Any]) -> FeedbackRecord:
        """Create from a raw subgraph `Feedback` entity."""
        feedback_file = feedback_data.get('feedbackFile') or {}
        if not isinstance(feedback_file, dict):
            feedback_file = {}

        # id format: chainId:tokenId:clientAddress:feedbackIndex
        feedback_id = str(feedback_data.get('id', ''))
        parts = feedback_id.split(':')
        agent = feedback_data.get('agent') or {}
        if isinstance(agent, dict) and agent.get('id'):
            agent_id = str(agent['id'])
        elif len(parts) >= 2:
            agent_id = f"{parts[0]}:{parts[1]}"
        else:
            agent_id = feedback_id

        reviewer = feedback_data.get('clientAddress') or (parts[2] if len(parts) > 2 else "")

        return cls(
            id=feedback_id,
            agentId=agent_id,
            reviewer=str(reviewer).lower(),
            score=_to_int(feedback_data.get('score')),
            tag1=_decode_tag(feedback_data.get('tag1') or feedback_file.get('tag1')),
            tag2=_decode_tag(feedback_data.get('tag2') or feedback_file.get('tag2')),
            isRevoked=bool(feedback_data.get('isRevoked', False)),
            capability=feedback_file.get('capability'),
            skill=feedback_file.get('skill'),
            task=feedback_file.get('task'),
            name=feedback_file.get('name'),
            text=feedback_file.get('text'),
            fileURI=feedback_data.get('feedbackUri'),
            createdAt=_to_int(feedback_data.get('createdAt')),
        )


@dataclass(frozen=True)
class ReputationSummary:
    """Count and integer average score over a filtered set of feedback.

    averageScore is 0 when count is 0; check count first.
    """
    count: int = 0
    averageScore: int = 0
    groups: Optional[Dict[str, ReputationSummary]] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"count": self.count, "averageScore": self.averageScore}
        if self.groups is not None:
            result["groups"] = {key: group.to_dict() for key, group in self.groups.items()}
        return result


class PredicateOp(Enum):
    """Predicate kinds a FilterSpec can carry."""
    EQ = "eq"
    EQ_NOCASE = "eq_nocase"
    CONTAINS = "contains"  # case-insensitive substring
    IN = "in"
    ARRAY_CONTAINS = "array_contains"  # all values present
    ARRAY_CONTAINS_ANY = "array_contains_any"


@dataclass(frozen=True)
class Predicate:
    """One named condition over an AgentRecord field."""
    field: str
    op: PredicateOp
    value: Any

    def __post_init__(self):
        if self.op in (PredicateOp.IN, PredicateOp.ARRAY_CONTAINS, PredicateOp.ARRAY_CONTAINS_ANY):
            # normalise to a tuple so predicates stay hashable
            object.__setattr__(self, "value", _to_tuple(self.value))


FilterSpec = Tuple[Predicate, ...]


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = True


@dataclass(frozen=True)
class SortSpec:
    """Ordered sort keys. Ties are always broken by AgentRecord.identity_key."""
    keys: Tuple[SortKey, ...] = ()

    @classmethod
    def parse(cls, sort: Union[str, List[str], None, SortSpec]) -> SortSpec:
        """Parse "field:dir" strings, e.g. ["totalFeedback:desc", "name:asc"].

        A field without direction sorts descending.
        """
        if isinstance(sort, SortSpec):
            return sort
        if not sort:
            return cls()
        if isinstance(sort, str):
            sort = [sort]
        keys = []
        for sort_field in sort:
            if ':' in sort_field:
                name, direction = sort_field.split(':', 1)
            else:
                name, direction = sort_field, 'desc'
            direction = direction.strip().lower()
            if direction not in ('asc', 'desc'):
                raise ValueError(f"Invalid sort direction '{direction}' in '{sort_field}'")
            keys.append(SortKey(field=name.strip(), descending=(direction == 'desc')))
        return cls(tuple(keys))

    def to_strings(self) -> List[str]:
        return [f"{key.field}:{'desc' if key.descending else 'asc'}" for key in self.keys]


@dataclass
class SearchParams:
    """Parameters for agent search."""
    chains: Optional[Union[List[ChainId], Literal["all"]]] = None
    name: Optional[str] = None  # case-insensitive substring
    description: Optional[str] = None  # case-insensitive substring
    owners: Optional[List[Address]] = None
    operators: Optional[List[Address]] = None
    mcp: Optional[bool] = None
    a2a: Optional[bool] = None
    ens: Optional[str] = None  # exact, case-insensitive
    did: Optional[str] = None  # exact
    walletAddress: Optional[Address] = None
    supportedTrust: Optional[List[Union[TrustModel, str]]] = None
    a2aSkills: Optional[List[str]] = None
    mcpTools: Optional[List[str]] = None
    mcpPrompts: Optional[List[str]] = None
    mcpResources: Optional[List[str]] = None
    active: Optional[bool] = True
    x402support: Optional[bool] = None
    deduplicate_cross_chain: bool = True  # collapse the same agent seen on several chains

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, filtering out None values."""
        return {k: v for k, v in self.__dict__.items() if v is not None}

    def to_filter_spec(self) -> FilterSpec:
        """Translate the search criteria into a declarative FilterSpec."""
        predicates: List[Predicate] = []

        for name in ("mcp", "a2a", "active", "x402support", "did"):
            value = getattr(self, name)
            if value is not None:
                predicates.append(Predicate(name, PredicateOp.EQ, value))

        if self.name is not None:
            predicates.append(Predicate("name", PredicateOp.CONTAINS, self.name))
        if self.description is not None:
            predicates.append(Predicate("description", PredicateOp.CONTAINS, self.description))
        if self.ens is not None:
            predicates.append(Predicate("ens", PredicateOp.EQ_NOCASE, self.ens))
        if self.walletAddress is not None:
            predicates.append(Predicate("walletAddress", PredicateOp.EQ_NOCASE, self.walletAddress))

        # Addresses are stored lower-case by the subgraph
        if self.owners:
            normalized_owners = [owner.lower() for owner in self.owners]
            if len(normalized_owners) == 1:
                predicates.append(Predicate("owner", PredicateOp.EQ, normalized_owners[0]))
            else:
                predicates.append(Predicate("owner", PredicateOp.IN, normalized_owners))
        if self.operators:
            predicates.append(Predicate(
                "operators", PredicateOp.ARRAY_CONTAINS_ANY, [op.lower() for op in self.operators]
            ))

        if self.supportedTrust:
            trusts = [t.value if isinstance(t, TrustModel) else t for t in self.supportedTrust]
            predicates.append(Predicate("supportedTrusts", PredicateOp.ARRAY_CONTAINS_ANY, trusts))
        for name in ("a2aSkills", "mcpTools", "mcpPrompts", "mcpResources"):
            values = getattr(self, name)
            if values:
                predicates.append(Predicate(name, PredicateOp.ARRAY_CONTAINS_ANY, values))

        return tuple(predicates)


@dataclass
class SearchFeedbackParams:
    """Parameters for feedback search."""
    agents: Optional[List[AgentId]] = None
    tags: Optional[List[str]] = None
    reviewers: Optional[List[Address]] = None
    capabilities: Optional[List[str]] = None
    skills: Optional[List[str]] = None
    tasks: Optional[List[str]] = None
    names: Optional[List[str]] = None  # MCP tool/resource/prompt names
    minScore: Optional[int] = None  # 0-100
    maxScore: Optional[int] = None  # 0-100
    includeRevoked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, filtering out None values."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class SearchTiming:
    totalMs: int = 0
    averagePerSourceMs: int = 0
    perSourceMs: Dict[ChainId, int] = field(default_factory=dict)


@dataclass
class SearchMeta:
    """Per-request bookkeeping reported alongside a page of results."""
    sources: List[ChainId] = field(default_factory=list)
    successfulSources: List[ChainId] = field(default_factory=list)
    failedSources: List[ChainId] = field(default_factory=list)
    totalResults: int = 0
    errors: Dict[ChainId, str] = field(default_factory=dict)
    timing: SearchTiming = field(default_factory=SearchTiming)


@dataclass
class SearchResult:
    """One page of a federated search."""
    items: List[AgentRecord] = field(default_factory=list)
    nextCursor: Optional[str] = None  # None once exhausted
    meta: SearchMeta = field(default_factory=SearchMeta)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire shape."""
        return {
            "items": [item.to_dict() for item in self.items],
            "nextCursor": self.nextCursor,
            "meta": {
                "sources": list(self.meta.sources),
                "successfulSources": list(self.meta.successfulSources),
                "failedSources": list(self.meta.failedSources),
                "totalResults": self.meta.totalResults,
                "errors": dict(self.meta.errors),
                "timing": {
                    "totalMs": self.meta.timing.totalMs,
                    "averagePerSourceMs": self.meta.timing.averagePerSourceMs,
                    "perSourceMs": dict(self.meta.timing.perSourceMs),
                },
            },
        }
