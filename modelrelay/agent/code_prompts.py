"""Prompts for the multi-agent code pipeline."""

from typing import List

from modelrelay.agent.schemas import AgentRole, ProjectPlan

AGENT_NAMES = {
    AgentRole.ARCHITECT: "System Architect",
    AgentRole.FRONTEND: "Frontend Developer",
    AgentRole.BACKEND: "Backend Developer",
}

AGENT_SPECIALTIES = {
    AgentRole.ARCHITECT: "software architect who analyzes requirements and designs system structure",
    AgentRole.FRONTEND: "frontend engineer specialized in React, Next.js and Tailwind CSS",
    AgentRole.BACKEND: "backend engineer specialized in Next.js API routes and server logic",
}

AGENT_SYSTEM_PROMPT = """You are {name}, an expert {specialty}.

CRITICAL RULES:
1. Write complete, working, production-ready code
2. Format every file as ```lang file="path/to/file"
3. Never leave placeholders like "// rest of the code here"
4. Never write Chinese, Japanese or Korean characters
5. Use React, Next.js 15 App Router, TypeScript, Tailwind CSS v4 and shadcn/ui"""

DESIGN_SYSTEM_PROMPT = """# Design System Guidelines

## Color System
- Use exactly 3-5 colors: 1 primary, 2-3 neutrals, 1-2 accents
- Avoid gradients unless explicitly requested
- Keep contrast at 4.5:1 for text and 3:1 for UI elements

## Typography
- At most 2 font families: one for headings, one for body text
- Body line-height between 1.4 and 1.6, never smaller than text-sm

## Layout
- Mobile-first; flexbox first, CSS grid only for real 2D layouts
- Use the Tailwind spacing scale and generous whitespace
- Semantic HTML with proper accessibility attributes"""

ARCHITECT_PLAN_PROMPT = """You are the System Architect. Analyze this project request and create a detailed plan.

User Request: {request}

Break down the project into specific tasks for:
1. Frontend Developer (UI components, styling, user interactions)
2. Backend Developer (APIs, data handling, server logic)

Respond in JSON format:
{{
  "projectName": "...",
  "description": "...",
  "frontendTasks": ["task1", "task2"],
  "backendTasks": ["task1", "task2"],
  "sharedRequirements": ["requirement1"]
}}"""

FRONTEND_PROMPT = """{design_system}

You are a Frontend Developer specializing in React and Next.js.

Project: {project_name}
Description: {description}

Your tasks:
{tasks}

Shared Requirements:
{shared_requirements}

IMPORTANT DESIGN RULES:
1. Use ONLY 3-5 colors total
2. Use ONLY 2 font families maximum
3. Make it responsive (mobile-first)
4. Add smooth transitions and hover effects
5. Use semantic HTML and proper accessibility

Create all necessary React components, pages and styles.

Format each file as:
```typescript file="path/to/file.tsx"
// code
```"""

BACKEND_PROMPT = """You are a Backend Developer specializing in Next.js API routes.

Project: {project_name}
Description: {description}

Your tasks:
{tasks}

Shared Requirements:
{shared_requirements}

Create all necessary API routes, server actions and data handling logic.

Format each file as:
```typescript file="path/to/file.ts"
// code
```"""

INTEGRATION_PROMPT = """You are the System Architect. Integrate the work from both agents.

Frontend Code:
{frontend_code}

Backend Code:
{backend_code}

Create the final integrated code with all necessary files.
Use this format for each file:

```typescript file="path/to/file.ts"
// code here
```"""


def agent_system_prompt(role: AgentRole) -> str:
    return AGENT_SYSTEM_PROMPT.format(name=AGENT_NAMES[role], specialty=AGENT_SPECIALTIES[role])


def _numbered(items: List[str]) -> str:
    if not items:
        return "(none)"
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def _lines(items: List[str]) -> str:
    return "\n".join(items) if items else "(none)"


def build_frontend_prompt(plan: ProjectPlan, request: str) -> str:
    return FRONTEND_PROMPT.format(
        design_system=DESIGN_SYSTEM_PROMPT,
        project_name=plan.project_name or "Untitled project",
        description=plan.description or request,
        tasks=_numbered(plan.frontend_tasks),
        shared_requirements=_lines(plan.shared_requirements),
    )


def build_backend_prompt(plan: ProjectPlan, request: str) -> str:
    return BACKEND_PROMPT.format(
        project_name=plan.project_name or "Untitled project",
        description=plan.description or request,
        tasks=_numbered(plan.backend_tasks),
        shared_requirements=_lines(plan.shared_requirements),
    )
