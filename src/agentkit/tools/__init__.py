"""
Tool registry for agentkit.

A :class:`ToolRegistry` is an ordered mapping from tool name to :class:`ToolEntry` (the schema the
model sees plus the handler the dispatcher calls).  Registries are plain values owned by the caller:
a parent agent and its sub-agents can each hold a differently-scoped one.
"""

import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    TypedDict,
)

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Any]
"""``(parsed_args) -> value``; may also be a coroutine function."""


class ToolSchema(TypedDict):
    """
    Declarative description of a tool, as advertised to the model.
    """

    name: str
    description: str
    parameters: Mapping[str, Any]  # JSON schema of the argument object


class ToolEntry(NamedTuple):
    """Pairs a tool's schema with its executable handler."""

    schema: ToolSchema
    handler: ToolHandler

    @property
    def name(self) -> str:
        """The tool name the model uses to call it."""
        return self.schema["name"]


def object_schema(
    properties: Mapping[str, Any], required: Optional[Sequence[str]] = None
) -> Dict[str, Any]:
    """Build a strict JSON object schema.

    Every property is required unless *required* says otherwise.
    """
    return {
        "type": "object",
        "properties": dict(properties),
        "required": list(properties) if required is None else list(required),
        "additionalProperties": False,
    }


class ToolRegistry:
    """
    Ordered collection of tool entries, looked up by name.

    Tools can be added directly::

        registry.add(ToolEntry(schema, handler))

    or registered with the decorator::

        @registry.register("echo", "Echo the input text", object_schema({"text": {"type": "string"}}))
        def echo(args):
            return args["text"]
    """

    def __init__(self, entries: Iterable[ToolEntry] = ()) -> None:
        self._entries: Dict[str, ToolEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: ToolEntry) -> None:
        """
        Add *entry* to the registry.

        Raises
        ------
        ValueError
            If a tool with the same name is already registered.
        """
        if entry.name in self._entries:
            raise ValueError(f"Tool '{entry.name}' is already registered.")
        logger.debug("Registering tool '%s'", entry.name)
        self._entries[entry.name] = entry

    def register(
        self, name: str, description: str, parameters: Optional[Mapping[str, Any]] = None
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of :meth:`add`; the decorated function becomes the handler."""

        def wrapper(fn: ToolHandler) -> ToolHandler:
            schema = ToolSchema(
                name=name,
                description=description,
                parameters=parameters if parameters is not None else object_schema({}),
            )
            self.add(ToolEntry(schema, fn))
            return fn

        return wrapper

    def get(self, name: str) -> Optional[ToolEntry]:
        """Return the entry registered under *name*, if any."""
        return self._entries.get(name)

    def names(self) -> List[str]:
        """Registered tool names, in registration order."""
        return list(self._entries)

    def schemas(self) -> List[ToolSchema]:
        """Schemas of every registered tool, in registration order."""
        return [entry.schema for entry in self._entries.values()]

    def copy(self) -> "ToolRegistry":
        """Shallow copy that can be extended without touching this registry."""
        return ToolRegistry(self._entries.values())

    def subset(self, names: Iterable[str]) -> Tuple["ToolRegistry", List[str]]:
        """
        Return a registry restricted to *names* and the requested names that were not found.

        Registration order is preserved; duplicates in *names* are ignored.
        """
        wanted = list(dict.fromkeys(names))
        missing = [name for name in wanted if name not in self._entries]
        matched = ToolRegistry(entry for name, entry in self._entries.items() if name in wanted)
        return matched, missing

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[ToolEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
