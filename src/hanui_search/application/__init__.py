"""
Application Layer - Use Cases and Business Logic Orchestration

Contains:
- search: query expansion, concurrent fetch, aggregation and the engine façade
"""
