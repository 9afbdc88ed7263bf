from __future__ import annotations

from fastapi import APIRouter, Depends

from expense_ocr.api.deps import get_current_user, get_extraction_adapter
from expense_ocr.core.config import settings
from expense_ocr.modules.extraction.prompts import TEMPLATES
from expense_ocr.modules.extraction.providers import PROVIDERS
from expense_ocr.modules.extraction.schemas import KeyCheckIn, KeyCheckOut, ProvidersOut
from expense_ocr.modules.extraction.service import ExtractionAdapter
from expense_ocr.modules.identity.models import User

router = APIRouter(tags=["extraction"])


@router.get("/extraction/providers", response_model=ProvidersOut)
def list_providers(
    adapter: ExtractionAdapter = Depends(get_extraction_adapter),
    _: User = Depends(get_current_user),
) -> ProvidersOut:
    return ProvidersOut(
        providers=list(PROVIDERS),
        configured=adapter.configured_providers(),
        templates=list(TEMPLATES),
        default_provider=settings.extraction_provider,
        default_template=settings.extraction_template,
    )


@router.post("/extraction/providers/{provider_name}/check", response_model=KeyCheckOut)
def check_provider_key(
    provider_name: str,
    payload: KeyCheckIn,
    adapter: ExtractionAdapter = Depends(get_extraction_adapter),
    _: User = Depends(get_current_user),
) -> KeyCheckOut:
    result = adapter.check_key(provider_name, payload.api_key)
    return KeyCheckOut(success=result.success, message=result.message)
