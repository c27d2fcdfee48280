"""Static catalog of upstream models.

The chat failover pool holds one text model and one vision model, both
free-tier. Coding agents get role-specific models.
"""

from typing import Dict, List, Optional, Tuple

from modelrelay.agent.schemas import AgentRole, ModelCapability, ModelDescriptor

AUTO_MODEL_ID = "auto"

TEXT_MODEL_ID = "xiaomi/mimo-v2-flash:free"
VISION_MODEL_ID = "nvidia/nemotron-nano-12b-v2-vl:free"


MODELS: Tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id=TEXT_MODEL_ID,
        name="MiMo V2 Flash",
        description="Fast general-purpose chat model",
        capability=ModelCapability.TEXT,
    ),
    ModelDescriptor(
        id=VISION_MODEL_ID,
        name="Nemotron Nano 12B VL",
        description="Image understanding and OCR",
        capability=ModelCapability.VISION,
    ),
    ModelDescriptor(
        id="kwaipilot/kat-coder-pro:free",
        name="KAT Coder Pro",
        description="Frontend and UI code generation",
        capability=ModelCapability.TEXT,
    ),
    ModelDescriptor(
        id="mistralai/devstral-2512:free",
        name="Devstral",
        description="Backend and API code generation",
        capability=ModelCapability.TEXT,
    ),
    ModelDescriptor(
        id="allenai/olmo-3.1-32b-think:free",
        name="OLMo 3.1 Think",
        description="Step-by-step reasoning",
        capability=ModelCapability.TEXT,
    ),
    ModelDescriptor(
        id="mistralai/devstral-small:free",
        name="Devstral Small",
        description="Lightweight coding assistant",
        capability=ModelCapability.TEXT,
    ),
    ModelDescriptor(
        id="meta-llama/llama-4-scout:free",
        name="Llama 4 Scout",
        description="Long-context general model",
        capability=ModelCapability.TEXT,
    ),
)

_BY_ID: Dict[str, ModelDescriptor] = {m.id: m for m in MODELS}

# Coding agent role -> model id
ROLE_MODELS: Dict[AgentRole, str] = {
    AgentRole.ARCHITECT: TEXT_MODEL_ID,
    AgentRole.FRONTEND: "kwaipilot/kat-coder-pro:free",
    AgentRole.BACKEND: "mistralai/devstral-2512:free",
}


def is_auto(model_id: Optional[str]) -> bool:
    """True when the caller left model choice to the engine."""
    return not model_id or model_id == AUTO_MODEL_ID


def get_model(model_id: str) -> Optional[ModelDescriptor]:
    return _BY_ID.get(model_id)


def text_model() -> ModelDescriptor:
    return _BY_ID[TEXT_MODEL_ID]


def vision_model() -> ModelDescriptor:
    return _BY_ID[VISION_MODEL_ID]


def failover_pool() -> List[str]:
    """Ordered model ids the chat engine may fail over across."""
    return [text_model().id, vision_model().id]


def model_for_role(role: AgentRole) -> ModelDescriptor:
    model_id = ROLE_MODELS[role]
    descriptor = get_model(model_id)
    return descriptor.model_copy(update={"role": role})


def selectable_models() -> List[dict]:
    """Catalog exposed to clients, with the virtual 'auto' entry first."""
    catalog = [{
        "id": AUTO_MODEL_ID,
        "name": "Auto",
        "description": "Picks the text or vision model per message",
        "capability": "auto",
    }]
    for model in MODELS:
        catalog.append({
            "id": model.id,
            "name": model.name,
            "description": model.description,
            "capability": model.capability.value,
        })
    return catalog
