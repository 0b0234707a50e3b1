"""
Application services: ruleset loading, admin registries, drafts,
monitoring, edge functions and seeds.
"""
