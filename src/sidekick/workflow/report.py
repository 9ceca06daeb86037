"""Validation result model with markdown rendering."""

from pydantic import BaseModel


class ValidationResult(BaseModel):
    """Outcome of structurally checking one candidate workflow."""

    is_valid: bool
    errors: list[str] = []
    warnings: list[str] = []
    node_count: int = 0
    has_connections: bool = False
    expected_nodes_found: list[str] = []

    def to_markdown(self, title: str = "Workflow") -> str:
        lines = [
            f"# Validation Report: {title}",
            "",
            f"**Valid:** {'yes' if self.is_valid else 'no'}",
            f"**Nodes:** {self.node_count}",
            f"**Has connections:** {'yes' if self.has_connections else 'no'}",
        ]
        if self.expected_nodes_found:
            lines.append(f"**Detected categories:** {', '.join(self.expected_nodes_found)}")
        lines.append("")

        if self.errors:
            lines.append("## Errors")
            for e in self.errors:
                lines.append(f"- {e}")
            lines.append("")

        if self.warnings:
            lines.append("## Warnings")
            for w in self.warnings:
                lines.append(f"- {w}")
            lines.append("")

        return "\n".join(lines).rstrip() + "\n"

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
