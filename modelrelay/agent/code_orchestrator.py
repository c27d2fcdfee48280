"""Multi-Agent Code Orchestrator - architect, frontend and backend agents.

Pipeline:
1. ANALYZING/PLANNING - the architect turns the request into a JSON plan
2. DEVELOPMENT - frontend and backend agents work concurrently
3. INTEGRATING - the architect merges both outputs into the final files
4. DONE - files are extracted from fenced code blocks

Any stage failure aborts the run with ProjectGenerationError.
"""

import asyncio
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from modelrelay.agent.code_parser import merge_code_files, parse_code_files
from modelrelay.agent.code_prompts import (
    ARCHITECT_PLAN_PROMPT,
    INTEGRATION_PROMPT,
    agent_system_prompt,
    build_backend_prompt,
    build_frontend_prompt,
)
from modelrelay.agent.schemas import (
    AgentMessage,
    AgentRole,
    AgentTask,
    ChatMessage,
    MessageRole,
    ProjectPhase,
    ProjectPlan,
    ProjectResult,
    TaskStatus,
)
from modelrelay.core import model_registry
from modelrelay.core.config import Settings
from modelrelay.core.exceptions import ConfigurationError, ProjectGenerationError
from modelrelay.core.llm_transport import LLMTransport

logger = logging.getLogger(__name__)

JSON_FENCE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL | re.IGNORECASE)

MessageListener = Callable[[AgentMessage], Any]
TaskListener = Callable[[List[AgentTask]], Any]


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Find the first JSON object in model output.

    Fenced blocks are tried first, then every ``{`` in the raw text.
    """
    if not text:
        return None

    decoder = json.JSONDecoder()
    for block in JSON_FENCE.findall(text):
        try:
            parsed = json.loads(block.strip())
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)
    return None


def parse_project_plan(text: str) -> Optional[ProjectPlan]:
    data = extract_json_object(text)
    if data is None:
        return None
    try:
        return ProjectPlan.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Architect plan has unexpected shape: {e}")
        return None


class CodeOrchestrator:
    """Drives the architect -> (frontend || backend) -> integration pipeline.

    Each stage is a single non-streaming completion on the role's model.
    Listeners are optional and may be sync callables; their errors are
    logged and otherwise ignored.
    """

    def __init__(
        self,
        transport: LLMTransport,
        settings: Settings,
        on_message: Optional[MessageListener] = None,
        on_task_update: Optional[TaskListener] = None,
    ):
        self.transport = transport
        self.settings = settings
        self.on_message = on_message
        self.on_task_update = on_task_update
        self.phase: Optional[ProjectPhase] = None
        self.tasks: List[AgentTask] = []
        self.messages: List[AgentMessage] = []

    def reset(self) -> None:
        self.phase = None
        self.tasks = []
        self.messages = []

    # ============== Progress reporting ==============

    def _report(self, agent: AgentRole, phase: ProjectPhase, content: str) -> None:
        self.phase = phase
        message = AgentMessage(agent_id=agent, phase=phase, content=content)
        self.messages.append(message)
        logger.info(f"[{agent.value}] {phase.value}: {content}")
        if self.on_message is not None:
            try:
                self.on_message(message)
            except Exception:
                logger.exception("on_message listener failed")

    def _publish_tasks(self) -> None:
        if self.on_task_update is not None:
            try:
                self.on_task_update(list(self.tasks))
            except Exception:
                logger.exception("on_task_update listener failed")

    def _add_task(self, agent: AgentRole, description: str) -> AgentTask:
        task = AgentTask(agent_id=agent, description=description)
        self.tasks.append(task)
        return task

    def _tasks_for(self, agent: AgentRole) -> List[AgentTask]:
        return [t for t in self.tasks if t.agent_id == agent and t.status == TaskStatus.PENDING]

    def _fail_open_tasks(self) -> None:
        for task in self.tasks:
            if task.status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS):
                task.fail()
        self._publish_tasks()

    # ============== Agent calls ==============

    async def _call_agent(self, role: AgentRole, prompt: str) -> str:
        model = model_registry.model_for_role(role)
        logger.info(f"Calling {role.value} agent on {model.id}")
        return await self.transport.complete(
            [ChatMessage(role=MessageRole.USER, content=prompt)],
            model.id,
            system_prompt=agent_system_prompt(role),
            temperature=self.settings.code_temperature,
            max_tokens=self.settings.code_max_tokens,
        )

    async def _run_developer(self, role: AgentRole, prompt: str) -> str:
        tasks = self._tasks_for(role)
        for task in tasks:
            task.start()
        self._publish_tasks()

        label = "Building UI components..." if role == AgentRole.FRONTEND else "Creating API routes..."
        self._report(role, ProjectPhase.DEVELOPMENT, label)

        output = await self._call_agent(role, prompt)

        for task in tasks:
            task.complete()
        self._publish_tasks()
        self._report(role, ProjectPhase.DEVELOPMENT, f"Finished {len(tasks)} task(s)")
        return output

    async def _develop(self, plan: ProjectPlan, request: str):
        frontend = asyncio.create_task(
            self._run_developer(AgentRole.FRONTEND, build_frontend_prompt(plan, request))
        )
        backend = asyncio.create_task(
            self._run_developer(AgentRole.BACKEND, build_backend_prompt(plan, request))
        )
        try:
            return await asyncio.gather(frontend, backend)
        except BaseException:
            for task in (frontend, backend):
                task.cancel()
            await asyncio.gather(frontend, backend, return_exceptions=True)
            raise

    # ============== Pipeline ==============

    async def generate_project(self, user_prompt: str) -> ProjectResult:
        """Run the full pipeline for one request.

        Raises:
            ConfigurationError: no usable API key
            ProjectGenerationError: any stage call failed
        """
        self.reset()
        try:
            return await self._generate(user_prompt)
        except ConfigurationError:
            self._fail_open_tasks()
            self.phase = ProjectPhase.FAILED
            raise
        except Exception as e:
            logger.error(f"Project generation failed in phase {self.phase}: {e}")
            self._fail_open_tasks()
            self.phase = ProjectPhase.FAILED
            raise ProjectGenerationError(f"Project generation failed: {e}") from e

    async def _generate(self, user_prompt: str) -> ProjectResult:
        planning = self._add_task(AgentRole.ARCHITECT, "Create project plan")
        planning.start()
        self._publish_tasks()
        self._report(AgentRole.ARCHITECT, ProjectPhase.ANALYZING, "Analyzing project requirements...")

        architect_output = await self._call_agent(
            AgentRole.ARCHITECT, ARCHITECT_PLAN_PROMPT.format(request=user_prompt)
        )
        plan = parse_project_plan(architect_output)
        plan_parsed = plan is not None
        if plan is None:
            logger.warning("Could not parse architect plan, continuing with an empty plan")
            plan = ProjectPlan()
        planning.complete()

        for description in plan.frontend_tasks:
            self._add_task(AgentRole.FRONTEND, description)
        for description in plan.backend_tasks:
            self._add_task(AgentRole.BACKEND, description)
        self._publish_tasks()
        self._report(
            AgentRole.ARCHITECT,
            ProjectPhase.PLANNING,
            f"Project plan created: {len(plan.frontend_tasks)} frontend, {len(plan.backend_tasks)} backend tasks",
        )

        frontend_code, backend_code = await self._develop(plan, user_prompt)

        integration = self._add_task(AgentRole.ARCHITECT, "Integrate components")
        integration.start()
        self._publish_tasks()
        self._report(AgentRole.ARCHITECT, ProjectPhase.INTEGRATING, "Integrating components...")

        integrated_code = await self._call_agent(
            AgentRole.ARCHITECT,
            INTEGRATION_PROMPT.format(frontend_code=frontend_code, backend_code=backend_code),
        )
        integration.complete()
        self._publish_tasks()

        files = parse_code_files(integrated_code)
        if not files:
            logger.info("Integration produced no files, merging agent outputs")
            files = merge_code_files(parse_code_files(frontend_code), parse_code_files(backend_code))

        self._report(AgentRole.ARCHITECT, ProjectPhase.DONE, f"Project ready with {len(files)} file(s)")
        return ProjectResult(
            plan=plan,
            plan_parsed=plan_parsed,
            architect_output=architect_output,
            frontend_code=frontend_code,
            backend_code=backend_code,
            integrated_code=integrated_code,
            files=files,
            tasks=list(self.tasks),
            messages=list(self.messages),
        )
