"""Pydantic schema for the optional document-understanding call.

The understanding is prompt context only: nothing downstream depends on any
field being present, so every field has a default.
"""

from pydantic import BaseModel, Field


class ModuleEstimate(BaseModel):
    module_name: str = Field(default="", description="Business module name")
    estimated_functions: int = Field(default=0, description="Expected number of functional processes")


class FunctionBreakdown(BaseModel):
    user_triggered: int = Field(default=0, description="Processes started by a user action")
    timer_triggered: int = Field(default=0, description="Scheduled processes")
    interface_triggered: int = Field(default=0, description="Processes started by another system calling us")


class DocumentUnderstanding(BaseModel):
    """What the model made of the document before splitting starts.

    Attributes:
        project_name: Name of the system being described
        project_description: One-sentence summary
        system_boundary: What is inside vs outside the system
        user_roles: Human or system actors
        data_entities: Business objects with their own state
        external_interfaces: Other systems exchanged with
        core_modules: Modules with estimated process counts
        function_breakdown: Estimated processes per trigger kind
        timed_tasks: Scheduled jobs mentioned by the document
        total_estimated_functions: Overall estimate
    """

    project_name: str = Field(default="", description="Name of the system being described")
    project_description: str = Field(default="", description="One-sentence summary of the system")
    system_boundary: str = Field(default="", description="What is inside the system and what is outside")
    user_roles: list[str] = Field(default_factory=list, description="Actors that interact with the system")
    data_entities: list[str] = Field(default_factory=list, description="Business objects with independent state")
    external_interfaces: list[str] = Field(default_factory=list, description="External systems exchanged with")
    core_modules: list[ModuleEstimate] = Field(default_factory=list, description="Modules with estimated counts")
    function_breakdown: FunctionBreakdown = Field(default_factory=FunctionBreakdown)
    timed_tasks: list[str] = Field(default_factory=list, description="Scheduled jobs")
    total_estimated_functions: int = Field(default=0, description="Estimated number of functional processes")

    @classmethod
    def from_payload(cls, payload: dict) -> "DocumentUnderstanding":
        """Build from camelCase model JSON, ignoring anything malformed."""
        def strings(key: str) -> list[str]:
            items = payload.get(key) or []
            out = []
            for item in items if isinstance(items, list) else []:
                if isinstance(item, str):
                    out.append(item)
                elif isinstance(item, dict):
                    name = item.get("name") or item.get("roleName") or item.get("entityName")
                    if name:
                        out.append(str(name))
            return out

        def as_int(value) -> int:
            try:
                return int(value)
            except (TypeError, ValueError):
                return 0

        modules = [
            ModuleEstimate(
                module_name=str(m.get("moduleName") or m.get("name") or ""),
                estimated_functions=as_int(m.get("estimatedFunctions")),
            )
            for m in payload.get("coreModules") or []
            if isinstance(m, dict)
        ]
        breakdown = payload.get("functionBreakdown") or {}
        if not isinstance(breakdown, dict):
            breakdown = {}

        return cls(
            project_name=str(payload.get("projectName") or ""),
            project_description=str(payload.get("projectDescription") or ""),
            system_boundary=str(payload.get("systemBoundary") or ""),
            user_roles=strings("userRoles"),
            data_entities=strings("dataEntities"),
            external_interfaces=strings("externalInterfaces"),
            core_modules=modules,
            function_breakdown=FunctionBreakdown(
                user_triggered=as_int(breakdown.get("userTriggeredFunctions")),
                timer_triggered=as_int(breakdown.get("timerTriggeredFunctions")),
                interface_triggered=as_int(breakdown.get("interfaceTriggeredFunctions")),
            ),
            timed_tasks=strings("timedTasks"),
            total_estimated_functions=as_int(payload.get("totalEstimatedFunctions")),
        )
