"""Model providers (OpenAI-compatible client and an offline fallback)."""
