"""
Core modules of the Agent0 search engine.
"""
