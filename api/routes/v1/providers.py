"""Provider routes: GET /v1/providers, GET /v1/providers/{name}/models."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException

from api.schemas import ModelListResponse, ProviderListResponse
from errors import LlmRequestFailedError, MissingCredentialError, ProviderRequestError, UnknownProviderError
from utils.call_llm import LlmGateway
from utils.llm_providers import ProviderRegistry

logger = logging.getLogger("agentic_wiki.api")

router = APIRouter()


def get_gateway() -> LlmGateway:
    """Gateway used for model listing; credentials come from the environment."""
    return LlmGateway(ProviderRegistry())


@router.get("/providers", response_model=ProviderListResponse)
def list_providers(gateway: LlmGateway = Depends(get_gateway)) -> ProviderListResponse:
    return ProviderListResponse(providers=gateway.registry.names())


@router.get("/providers/{name}/models", response_model=ModelListResponse)
def list_provider_models(
    name: str,
    x_provider_key: str | None = Header(default=None),
    gateway: LlmGateway = Depends(get_gateway),
) -> ModelListResponse:
    """
    Models of one provider, in the provider's order (the first is the default).
    404 unknown provider, 401 missing credential, 502 upstream failure.
    """
    try:
        models = gateway.list_models(name, credential=x_provider_key)
    except UnknownProviderError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except MissingCredentialError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except (ProviderRequestError, LlmRequestFailedError) as e:
        logger.warning("Model listing for %s failed: %s", name, e)
        raise HTTPException(status_code=502, detail=str(e))
    return ModelListResponse(
        provider=name,
        models=[
            {
                "id": m.id,
                "display_name": m.display_name,
                "context_length": m.context_length,
                "pricing": {"prompt": m.pricing.prompt, "completion": m.pricing.completion} if m.pricing else None,
            }
            for m in models
        ],
    )
