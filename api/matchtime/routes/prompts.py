from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo as auth_repo
from ..auth.deps import get_current_user
from ..deps import parse_uuid
from ..services.sanitization import optional_clean

router = APIRouter()
scaffold_router = APIRouter()

PROMPT_RESPONSE_MAX_LENGTH = 300


@scaffold_router.get("/health")
def prompts_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "prompts"}


@router.get("/prompts")
def list_prompts(category: str | None = None, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    _ = current_user
    return {"prompts": auth_repo.list_prompts(category)}


@router.get("/prompts/random")
def random_prompt(category: str | None = None, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    _ = current_user
    prompt = auth_repo.random_prompt(category)
    if not prompt:
        raise HTTPException(status_code=404, detail="No prompts available")
    return {"prompt": prompt}


@router.get("/profile/prompts")
def list_my_prompt_responses(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return {"responses": auth_repo.list_prompt_responses(str(current_user["id"]))}


@router.put("/profile/prompts/{prompt_id}")
def save_prompt_response(
    prompt_id: str,
    payload: dict[str, Any],
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    pid = parse_uuid(prompt_id, "prompt_id")
    prompt = auth_repo.get_prompt(pid)
    if not prompt or not prompt.get("is_active"):
        raise HTTPException(status_code=404, detail="Prompt not found")
    try:
        response_text = optional_clean(payload.get("response_text"), PROMPT_RESPONSE_MAX_LENGTH, "response_text")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not response_text:
        raise HTTPException(status_code=400, detail="response_text is required")
    saved = auth_repo.upsert_prompt_response(
        str(current_user["id"]),
        pid,
        response_text,
        bool(payload.get("is_public", True)),
    )
    saved["prompt_text"] = prompt.get("prompt_text")
    return {"response": saved}


@router.delete("/profile/prompts/{prompt_id}")
def delete_prompt_response(prompt_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    deleted = auth_repo.delete_prompt_response(str(current_user["id"]), parse_uuid(prompt_id, "prompt_id"))
    if not deleted:
        raise HTTPException(status_code=404, detail="Prompt response not found")
    return {"ok": True}
