"""
Viewport-driven listings client for the map page.

`ViewportQueryClient` owns the request lifecycle (throttle, coalesce, cancel, retry);
`MapListingsController` builds queries from the live map and renders the results.
"""
