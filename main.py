"""
FastAPI backend for competitor analysis
- Hides the Financial Modeling Prep / Perplexity API keys (server-side)
- Resolves peers through a fallback cascade and fuses per-company financials
- Short-TTL response cache (memory or SQLite via CACHE_BACKEND / DB_PATH)
- CORS is configurable via ALLOWED_ORIGINS env
"""

import logging
import os

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

if __name__ == "__main__":
    # Local testing: `python main.py`
    # For production use:
    #   uvicorn app:app --host 0.0.0.0 --port $PORT
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=os.getenv("RELOAD") == "1")
