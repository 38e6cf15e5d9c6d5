"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass, field


@dataclass
class TokenUsage:
    """Token usage information from the model provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def from_metadata(cls, metadata: dict | None) -> "TokenUsage | None":
        """Build usage from a LangChain ``usage_metadata`` mapping."""
        if not metadata:
            return None
        input_tokens = metadata.get("input_tokens", 0) or 0
        output_tokens = metadata.get("output_tokens", 0) or 0
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=metadata.get("total_tokens") or input_tokens + output_tokens,
        )


@dataclass
class TurnResult:
    """Result from processing one user turn."""

    answer: str
    session_id: str
    rounds: int = 0
    messages_added: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)
