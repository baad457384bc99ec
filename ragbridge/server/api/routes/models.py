"""
Model listing API route.
"""

from fastapi import APIRouter

from ..dependencies import get_server_config

router = APIRouter(prefix="/v1", tags=["models"])


@router.get("/models")
async def list_models():
    """List the chat and embedding models this server routes to."""
    config = get_server_config()
    return {
        "object": "list",
        "data": [
            {
                "id": binding.alias,
                "object": "model",
                "owned_by": "ragbridge",
                "name": binding.name,
                "ctx_size": binding.ctx_size,
                "kind": kind,
            }
            for kind, binding in (
                ("chat", config.bindings.chat),
                ("embedding", config.bindings.embedding),
            )
        ],
    }
