"""
Theme catalog data model
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class ThemeDefinition:
    """One entry of the controlled theme vocabulary"""
    id: str
    name: str
    category: str = ""
    description: str = ""

    def to_dict(self) -> dict:
        """Convert theme to dictionary for storage"""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ThemeDefinition":
        """Create theme from dictionary"""
        return cls(
            id=str(data["id"]),
            name=data["name"],
            category=data.get("category") or "",
            description=data.get("description") or "",
        )

    def prompt_line(self) -> str:
        """Render the theme the way prompts list it: name (category): description"""
        return f"{self.name} ({self.category}): {self.description}"
