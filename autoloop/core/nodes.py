"""
Node System for AutoLoop Workflow Engine

This module defines the node types that compose workflows. Every node type
has its own config model, so each variant only carries the fields relevant
to it:

- Entry / structural: start, webhook, schedule, merge, splitInBatches, filter
- Logic: condition, abSplit, custom, delay, set
- Outreach: template (email), whatsappNode, linkedinMessage
- Data: gemini, agent, apiRequest, database, scraper, linkedinScraper

All nodes are immutable (frozen) Pydantic models with validation. The graph
is stored the way the visual builder saves it:

    {"id": "n2", "type": "workflowNode", "position": {...},
     "data": {"type": "condition", "label": "Has email?",
              "config": {"condition": "email"}}}

`create_node_from_dict` also accepts the flat form
`{"id", "type", "label", "config"}`.
"""

from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import Any, Dict, List, Literal, Optional, Union

from .custom_code import validate_custom_code

# Edge handles that belong to a specific branch; every other handle
# (including None) is a default edge.
BRANCH_HANDLES = frozenset({"true", "false", "a", "b", "error"})


# ============================================================================
# NODE CONFIGS
# ============================================================================

class NodeConfig(BaseModel):
    """
    Base class for node configs.

    The builder keeps one config object per node and does not clear fields
    when the node type changes, so unknown keys are ignored.
    """

    class Config:
        frozen = True
        extra = "ignore"
        populate_by_name = True


class ConditionConfig(NodeConfig):
    condition: str = ""


class TemplateConfig(NodeConfig):
    template_id: Optional[str] = Field(None, alias="templateId")
    prevent_duplicates: bool = Field(True, alias="preventDuplicates")
    cooldown_days: int = Field(0, ge=0, alias="cooldownDays")


class DelayConfig(NodeConfig):
    delay_hours: float = Field(24, ge=0, alias="delayHours")
    delay_minutes: float = Field(0, ge=0, alias="delayMinutes")

    @property
    def total_seconds(self) -> int:
        return int(self.delay_hours * 3600 + self.delay_minutes * 60)


class CustomConfig(NodeConfig):
    custom_code: Optional[str] = Field(None, alias="customCode")


class AIConfig(NodeConfig):
    """Shared by gemini and agent nodes (the agent editor uses agentPrompt/agentContext)."""

    prompt: Optional[str] = Field(
        None, validation_alias=AliasChoices("aiPrompt", "agentPrompt", "prompt")
    )
    context: Optional[str] = Field(
        None, validation_alias=AliasChoices("aiContext", "agentContext", "context")
    )
    system_prompt: Optional[str] = Field(
        None, validation_alias=AliasChoices("systemPrompt", "system_prompt")
    )
    model: Optional[str] = None


class ApiRequestConfig(NodeConfig):
    url: str = ""
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    headers: Optional[Union[str, Dict[str, Any]]] = None
    body: Optional[Union[str, Dict[str, Any], List[Any]]] = None

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class DatabaseConfig(NodeConfig):
    operation: Literal["insert", "update", "upsert", "delete"] = Field(
        "insert", validation_alias=AliasChoices("dbOperation", "operation")
    )
    table_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("tableName", "table", "table_name")
    )
    data: Optional[Union[str, Dict[str, Any]]] = Field(
        None, validation_alias=AliasChoices("dbData", "data")
    )
    match_field: str = Field("id", validation_alias=AliasChoices("matchField", "match_field"))


class ScraperConfig(NodeConfig):
    action: Literal["fetch-url", "extract-emails", "clean-html", "markdown", "summarize"] = Field(
        "fetch-url", validation_alias=AliasChoices("scraperAction", "action")
    )
    input: Optional[str] = Field(
        None, validation_alias=AliasChoices("scraperInputField", "scraperInput", "input")
    )


class LinkedInScraperConfig(NodeConfig):
    keywords: str = ""
    location: str = ""
    limit: int = Field(10, ge=1)


class LinkedInMessageConfig(NodeConfig):
    profile_url: str = Field(
        "{business.website}", validation_alias=AliasChoices("profileUrl", "linkedinUrl", "profile_url")
    )
    message: str = ""


class WhatsAppConfig(NodeConfig):
    template_name: Optional[str] = Field(None, alias="templateName")
    template_language: str = Field("en_US", alias="templateLanguage")
    variables: List[str] = Field(default_factory=list)

    @field_validator("variables", mode="before")
    @classmethod
    def split_variables(cls, v: Any) -> Any:
        """The editor stores the parameter list as a comma-separated string"""
        if v is None:
            return []
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v


class ABSplitConfig(NodeConfig):
    weight: float = Field(50, ge=0, le=100)


class SetConfig(NodeConfig):
    values: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("setVariables", "values")
    )

    @field_validator("values", mode="before")
    @classmethod
    def pairs_to_dict(cls, v: Any) -> Any:
        """Accept [{"key": ..., "value": ...}] as well as a mapping"""
        if v is None:
            return {}
        if isinstance(v, list):
            return {item["key"]: item.get("value") for item in v if isinstance(item, dict) and item.get("key")}
        return v


class StructuralConfig(NodeConfig):
    """webhook / schedule / merge / splitInBatches / filter keep their editor settings as-is"""

    class Config:
        frozen = True
        extra = "allow"


# ============================================================================
# NODES
# ============================================================================

class BaseNode(BaseModel):
    """
    Base class for all workflow nodes.

    All nodes have:
    - id: Unique identifier
    - type: Node type
    - label: Optional human-readable label
    - config: Type-specific config model

    Nodes are immutable (frozen=True) for safety.
    """

    id: str = Field(..., min_length=1, description="Unique node identifier")
    type: str
    label: Optional[str] = Field(None, description="Human-readable label")

    class Config:
        frozen = True  # Immutable
        extra = "forbid"  # Reject unknown fields

    @field_validator("id")
    @classmethod
    def validate_id_not_empty(cls, v: str) -> str:
        """Ensure ID is not empty or whitespace"""
        if not v.strip():
            raise ValueError("Node ID cannot be empty")
        return v

    @property
    def display_label(self) -> str:
        return self.label or self.id

    def validate_node(self) -> None:
        """
        Additional validation logic specific to each node type.
        Called after Pydantic validation.
        """
        pass


class StartNode(BaseNode):
    """Entry point of the workflow. Every workflow must have exactly one."""

    type: Literal["start"] = "start"
    config: StructuralConfig = Field(default_factory=StructuralConfig)


class ConditionNode(BaseNode):
    """Routes to the `true` or `false` handle based on config.condition."""

    type: Literal["condition"] = "condition"
    config: ConditionConfig = Field(default_factory=ConditionConfig)


class TemplateNode(BaseNode):
    """Sends an email template to the business (`error` handle on send failure)."""

    type: Literal["template"] = "template"
    config: TemplateConfig = Field(default_factory=TemplateConfig)


class DelayNode(BaseNode):
    """Suspends the branch and resumes it later through the workflow queue."""

    type: Literal["delay"] = "delay"
    config: DelayConfig = Field(default_factory=DelayConfig)


class CustomNode(BaseNode):
    """
    Runs user Python code against (business, variables).

    Code is compiled at parse time so syntax errors surface as invalid
    workflows instead of failing halfway through a run.
    """

    type: Literal["custom"] = "custom"
    config: CustomConfig = Field(default_factory=CustomConfig)

    def validate_node(self) -> None:
        if self.config.custom_code:
            try:
                validate_custom_code(self.config.custom_code)
            except SyntaxError as e:
                raise ValueError(f"Invalid Python syntax in custom code: {e}")


class GeminiNode(BaseNode):
    type: Literal["gemini"] = "gemini"
    config: AIConfig = Field(default_factory=AIConfig)


class AgentNode(BaseNode):
    type: Literal["agent"] = "agent"
    config: AIConfig = Field(default_factory=AIConfig)


class ApiRequestNode(BaseNode):
    type: Literal["apiRequest"] = "apiRequest"
    config: ApiRequestConfig = Field(default_factory=ApiRequestConfig)


class DatabaseNode(BaseNode):
    type: Literal["database"] = "database"
    config: DatabaseConfig = Field(default_factory=DatabaseConfig)


class ScraperNode(BaseNode):
    type: Literal["scraper"] = "scraper"
    config: ScraperConfig = Field(default_factory=ScraperConfig)


class LinkedInScraperNode(BaseNode):
    type: Literal["linkedinScraper"] = "linkedinScraper"
    config: LinkedInScraperConfig = Field(default_factory=LinkedInScraperConfig)


class LinkedInMessageNode(BaseNode):
    type: Literal["linkedinMessage"] = "linkedinMessage"
    config: LinkedInMessageConfig = Field(default_factory=LinkedInMessageConfig)


class WhatsAppNode(BaseNode):
    type: Literal["whatsappNode"] = "whatsappNode"
    config: WhatsAppConfig = Field(default_factory=WhatsAppConfig)


class ABSplitNode(BaseNode):
    """Routes to handle `a` with probability weight/100, otherwise `b`."""

    type: Literal["abSplit"] = "abSplit"
    config: ABSplitConfig = Field(default_factory=ABSplitConfig)


class SetNode(BaseNode):
    type: Literal["set"] = "set"
    config: SetConfig = Field(default_factory=SetConfig)


class WebhookNode(BaseNode):
    type: Literal["webhook"] = "webhook"
    config: StructuralConfig = Field(default_factory=StructuralConfig)


class ScheduleNode(BaseNode):
    type: Literal["schedule"] = "schedule"
    config: StructuralConfig = Field(default_factory=StructuralConfig)


class MergeNode(BaseNode):
    type: Literal["merge"] = "merge"
    config: StructuralConfig = Field(default_factory=StructuralConfig)


class SplitInBatchesNode(BaseNode):
    type: Literal["splitInBatches"] = "splitInBatches"
    config: StructuralConfig = Field(default_factory=StructuralConfig)


class FilterNode(BaseNode):
    type: Literal["filter"] = "filter"
    config: StructuralConfig = Field(default_factory=StructuralConfig)


# Type alias for any node
NodeType = Union[
    StartNode, ConditionNode, TemplateNode, DelayNode, CustomNode,
    GeminiNode, AgentNode, ApiRequestNode, DatabaseNode, ScraperNode,
    LinkedInScraperNode, LinkedInMessageNode, WhatsAppNode, ABSplitNode,
    SetNode, WebhookNode, ScheduleNode, MergeNode, SplitInBatchesNode, FilterNode,
]

NODE_CLASSES: Dict[str, type] = {
    "start": StartNode,
    "condition": ConditionNode,
    "template": TemplateNode,
    "delay": DelayNode,
    "custom": CustomNode,
    "gemini": GeminiNode,
    "agent": AgentNode,
    "apiRequest": ApiRequestNode,
    "database": DatabaseNode,
    "scraper": ScraperNode,
    "linkedinScraper": LinkedInScraperNode,
    "linkedinMessage": LinkedInMessageNode,
    "whatsappNode": WhatsAppNode,
    "abSplit": ABSplitNode,
    "set": SetNode,
    "webhook": WebhookNode,
    "schedule": ScheduleNode,
    "merge": MergeNode,
    "splitInBatches": SplitInBatchesNode,
    "filter": FilterNode,
}


def create_node_from_dict(node_data: Dict[str, Any]) -> NodeType:
    """
    Factory function to create the appropriate Node from a dictionary.

    Args:
        node_data: Node as saved by the builder ({id, data: {type, label, config}})
                   or in flat form ({id, type, label, config})

    Returns:
        Instance of the node class registered for the type

    Raises:
        ValueError: If node type is unknown or validation fails

    Example:
        >>> node = create_node_from_dict({
        ...     "id": "n2",
        ...     "data": {"type": "abSplit", "label": "Split", "config": {"weight": 30}}
        ... })
        >>> node.config.weight
        30.0
    """
    data = node_data.get("data")
    if isinstance(data, dict) and "type" in data:
        # Top-level "type" is the builder's component name, not the node type
        node_type = data.get("type")
        label = data.get("label")
        config = data.get("config")
    else:
        node_type = node_data.get("type")
        label = node_data.get("label")
        config = node_data.get("config")

    node_class = NODE_CLASSES.get(node_type)
    if node_class is None:
        raise ValueError(
            f"Unknown node type: {node_type}. Must be one of {sorted(NODE_CLASSES)}"
        )

    try:
        node = node_class(id=node_data.get("id"), type=node_type, label=label, config=config or {})
        node.validate_node()
        return node
    except Exception as e:
        raise ValueError(f"Failed to create {node_type} node '{node_data.get('id')}': {e}")


# ============================================================================
# EDGES & GRAPH
# ============================================================================

class Edge(BaseModel):
    """
    Directed edge between two nodes.

    source_handle selects the branch for condition (true/false),
    abSplit (a/b) and template (error) nodes.
    """

    id: Optional[str] = None
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    source_handle: Optional[str] = Field(None, alias="sourceHandle")

    class Config:
        frozen = True
        extra = "ignore"
        populate_by_name = True

    @property
    def is_default(self) -> bool:
        return self.source_handle not in BRANCH_HANDLES


class WorkflowGraph(BaseModel):
    """
    Parsed workflow: nodes keyed by id (definition order kept) and edges in
    list order. Edge order is the traversal order of siblings.
    """

    nodes: Dict[str, Any]
    edges: List[Edge]

    class Config:
        frozen = True

    @classmethod
    def from_definition(cls, nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]]) -> "WorkflowGraph":
        """
        Parse builder JSON into a graph.

        Raises:
            ValueError: If a node or edge cannot be parsed
        """
        parsed: Dict[str, Any] = {}
        for node_data in nodes or []:
            node = create_node_from_dict(node_data)
            if node.id in parsed:
                raise ValueError(f"Duplicate node ID: {node.id}")
            parsed[node.id] = node

        parsed_edges = []
        for edge_data in edges or []:
            try:
                parsed_edges.append(Edge.model_validate(edge_data))
            except Exception as e:
                raise ValueError(f"Failed to parse edge {edge_data.get('id')}: {e}")

        return cls(nodes=parsed, edges=parsed_edges)

    def find_start_nodes(self) -> List[NodeType]:
        return [node for node in self.nodes.values() if node.type == "start"]

    def outgoing(self, node_id: str, handle: Optional[str] = None) -> List[Edge]:
        """
        Edges leaving node_id.

        With handle=None returns the default (non-branch) edges, otherwise the
        edges carrying exactly that handle.
        """
        if handle is None:
            return [e for e in self.edges if e.source == node_id and e.is_default]
        return [e for e in self.edges if e.source == node_id and e.source_handle == handle]

    def get_node(self, node_id: str) -> Optional[NodeType]:
        return self.nodes.get(node_id)
