"""System health and model catalog endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from faultline.engine.models.manager import ModelManager
from faultline.engine.models.providers import ProviderFactory
from faultline.engine.web.endpoints.debates import setup_debate_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/health")
async def health_check():
    """Health check endpoint to verify API is running."""
    return {"isAlive": True}


@router.get("/providers")
async def get_providers():
    """List the model providers debates can use and whether they are configured."""
    system_config = setup_debate_manager().system_config
    return {"providers": ProviderFactory.describe_providers(system_config)}


@router.get("/models")
async def get_models():
    """Get available models grouped by provider."""
    try:
        model_manager = ModelManager(setup_debate_manager().system_config)
        return {"models_by_provider": await model_manager.get_available_models()}
    except Exception as e:
        logger.error(f"Failed to list models: {e}")
        raise HTTPException(status_code=500, detail=str(e))
