"""FastAPI REST API for Hookline.

This module provides the REST API for webhook administration and event
ingress.

Example:
    ```python
    import uvicorn
    from hookline.api import create_app

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
    ```

Or run directly:
    ```bash
    uvicorn hookline.api:app
    ```
"""

from .app import app, create_app, register_exception_handlers
from .router import router

__all__ = [
    "app",
    "create_app",
    "register_exception_handlers",
    "router",
]
