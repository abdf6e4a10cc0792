"""HTTP layer: routers, dependency providers and middleware."""
