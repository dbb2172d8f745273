"""
Table data source service package.

Lets a UI table request one page of rows (pagination, sorting, global
search, per-column filters) without knowing whether the remote source can
query server side or only delivers everything at once.

Structure:
- app.query: QueryState, result types, cache keys and the parameter codec.
- app.normalization: payload shapes -> PagedResult.
- app.caching: TTL cache for pages and bulk datasets.
- app.engine: in-process filter/sort/paginate for bulk sources.
- app.adapters: HTTP transport.
- app.domain: query gateway and table session.
- app.mock_api: demo rows source.
- app.main: FastAPI app and routes.
"""
