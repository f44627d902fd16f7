"""
Asset Hierarchy Service

Multi-tenant organizational/location hierarchy with physical assets attached,
assembled into a single navigable forest and served over FastAPI.
"""
