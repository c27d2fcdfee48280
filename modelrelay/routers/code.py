"""Code router - single-model generation or the multi-agent pipeline."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from modelrelay.agent.code_orchestrator import CodeOrchestrator
from modelrelay.agent.failover import last_user_content
from modelrelay.agent.schemas import AgentRole
from modelrelay.core import model_registry
from modelrelay.core.exceptions import AttemptFailure, ProjectGenerationError
from modelrelay.core.security import sanitize_input
from modelrelay.models.schemas import CodeRequest, CodeResponse

logger = logging.getLogger(__name__)

router = APIRouter()

CODE_ERROR_MESSAGE = "Failed to generate code"


@router.post("", response_model=CodeResponse)
async def generate_code(request: Request, body: CodeRequest):
    """Generate code for the conversation.

    With ``agentMode`` the architect, frontend and backend agents build a
    whole project and the extracted files and plan are returned as well.
    """
    transport = request.app.state.transport
    settings = request.app.state.settings
    messages = [m.to_domain() for m in body.messages]
    messages = [m.model_copy(update={"content": sanitize_input(m.content)}) for m in messages]

    if body.agent_mode:
        orchestrator = CodeOrchestrator(transport, settings)
        try:
            result = await orchestrator.generate_project(last_user_content(messages))
        except ProjectGenerationError as e:
            logger.error(f"Agent pipeline failed: {e}")
            return JSONResponse(status_code=500, content={"error": CODE_ERROR_MESSAGE})

        return CodeResponse(
            content=result.integrated_code,
            model=model_registry.model_for_role(AgentRole.ARCHITECT).id,
            files=result.files,
            plan=result.plan,
        )

    model = body.model
    if model_registry.is_auto(model):
        model = model_registry.model_for_role(AgentRole.ARCHITECT).id
    logger.info(f"Code generation request with model: {model}")
    try:
        content = await transport.complete(
            messages,
            model,
            temperature=settings.code_temperature,
            max_tokens=settings.code_max_tokens,
        )
    except AttemptFailure as e:
        logger.error(f"Code generation with {model} failed: {e.kind.value} - {e.message}")
        return JSONResponse(status_code=500, content={"error": CODE_ERROR_MESSAGE})

    return CodeResponse(content=content, model=model)
