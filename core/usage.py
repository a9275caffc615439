from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass
class ServiceUsage:
    """Request and token counters for calls made to the text service."""

    requests: int = 0
    rate_limit_retries: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add_tokens(self, usage: dict[str, int] | None) -> None:
        """Accumulate an OpenAI-style ``usage`` block, ignoring missing keys."""
        if not usage:
            return
        self.prompt_tokens += int(usage.get("prompt_tokens", 0) or 0)
        self.completion_tokens += int(usage.get("completion_tokens", 0) or 0)
        self.total_tokens += int(usage.get("total_tokens", 0) or 0)

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    def copy(self) -> ServiceUsage:
        return ServiceUsage(**self.as_dict())

    def since(self, baseline: ServiceUsage) -> ServiceUsage:
        """Counters accumulated after ``baseline`` was copied."""
        return ServiceUsage(
            **{key: value - getattr(baseline, key) for key, value in self.as_dict().items()}
        )
