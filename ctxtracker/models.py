from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

CURRENT_MARKER = "current"
CONTEXT_FIELDS = ('id', 'name', 'color', 'lastActive', 'notes', 'resources')


class ContextState(Enum):
    """Whether a context is the one currently selected"""
    ACTIVE = "active"
    INACTIVE = "inactive"

    def to_marker(self) -> str:
        """Encode as the legacy `lastActive` string"""
        return CURRENT_MARKER if self is ContextState.ACTIVE else ""

    @classmethod
    def from_marker(cls, marker) -> "ContextState":
        """Decode a `lastActive` value; anything but "current" is inactive"""
        return cls.ACTIVE if marker == CURRENT_MARKER else cls.INACTIVE


def _required_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Context field {key!r} must be a non-empty string")
    return value


def _str_list(data: dict, key: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"Context field {key!r} must be a list of strings")
    return list(value)


@dataclass
class Context:
    """Locally tracked work context"""
    id: str
    name: str
    color: str = ""
    state: ContextState = ContextState.INACTIVE
    notes: List[str] = field(default_factory=list)
    resources: List[str] = field(default_factory=list)
    # keys written by other tools, kept as-is
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.state is ContextState.ACTIVE

    def activate(self):
        self.state = ContextState.ACTIVE

    def deactivate(self):
        self.state = ContextState.INACTIVE

    def add_note(self, text: str):
        self.notes.append(text)

    def add_resource(self, resource: str):
        """Add a resource unless it is already attached"""
        if resource not in self.resources:
            self.resources.append(resource)

    def to_dict(self) -> dict:
        """Convert context to dictionary for JSON serialization"""
        data = {
            'id': self.id,
            'name': self.name,
            'color': self.color,
            'lastActive': self.state.to_marker(),
            'notes': list(self.notes),
            'resources': list(self.resources),
        }
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, data: dict):
        """Create context from dictionary.

        Ids and names must be non-empty strings; a numeric id is rejected
        rather than coerced. Missing optional fields default, fields of the
        wrong type raise ValueError, and unknown keys land in `extra`.
        """
        color = data.get('color')
        if color is None:
            color = ""
        elif not isinstance(color, str):
            raise ValueError("Context field 'color' must be a string")
        return cls(
            id=_required_str(data, 'id'),
            name=_required_str(data, 'name'),
            color=color,
            state=ContextState.from_marker(data.get('lastActive')),
            notes=_str_list(data, 'notes'),
            resources=_str_list(data, 'resources'),
            extra={k: v for k, v in data.items() if k not in CONTEXT_FIELDS},
        )


def default_contexts() -> List[Context]:
    """Contexts seeded on first run"""
    return [
        Context(id="work", name="Work", color="#FF6B6B", state=ContextState.ACTIVE),
        Context(id="learning", name="Learning", color="#4ECDC4"),
    ]


# Records below are owned by the session service and only read here.

@dataclass
class RemoteContext:
    context_id: str
    name: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            context_id=str(data['context_id']),
            name=data.get('name', ""),
            description=data.get('description'),
        )


@dataclass
class Session:
    session_id: int
    context_id: str
    start_time: str
    end_time: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.end_time is None

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            session_id=int(data['session_id']),
            context_id=str(data.get('context_id', "")),
            start_time=data.get('start_time', ""),
            end_time=data.get('end_time'),
        )


@dataclass
class SessionEvent:
    event_id: int
    session_id: int
    timestamp: str
    event_type: str
    event_data: Any = None

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            event_id=int(data['event_id']),
            session_id=int(data['session_id']),
            timestamp=data.get('timestamp', ""),
            event_type=data.get('event_type', ""),
            event_data=data.get('event_data'),
        )


@dataclass
class SessionSummary:
    overview: str = ""
    key_topics: List[str] = field(default_factory=list)
    learning_highlights: List[str] = field(default_factory=list)
    resources_used: List[str] = field(default_factory=list)
    conclusion: str = ""

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            overview=data.get('overview', ""),
            key_topics=list(data.get('key_topics') or []),
            learning_highlights=list(data.get('learning_highlights') or []),
            resources_used=list(data.get('resources_used') or []),
            conclusion=data.get('conclusion', ""),
        )
