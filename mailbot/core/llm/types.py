"""Provider response shapes and tool declarations."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PlainText:
    """Provider answered with free-form text."""

    text: str


@dataclass(frozen=True)
class ActionInvocation:
    """Provider answered by invoking a declared tool."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


ProviderResponse = PlainText | ActionInvocation


@dataclass(frozen=True)
class ToolSpec:
    """A callable action offered to the model.

    All parameters are required strings; ``parameters`` maps name → description.
    """

    name: str
    description: str
    parameters: dict[str, str]

    def json_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                pname: {"type": "string", "description": desc}
                for pname, desc in self.parameters.items()
            },
            "required": list(self.parameters),
        }

    def for_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }

    def for_claude(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.json_schema(),
        }

    def for_gemini(self):
        from google.genai import types

        return types.Tool(
            function_declarations=[
                types.FunctionDeclaration(
                    name=self.name,
                    description=self.description,
                    parameters=types.Schema(
                        type=types.Type.OBJECT,
                        properties={
                            pname: types.Schema(type=types.Type.STRING, description=desc)
                            for pname, desc in self.parameters.items()
                        },
                        required=list(self.parameters),
                    ),
                )
            ]
        )


SEND_EMAIL_TOOL = ToolSpec(
    name="send_email",
    description="Send the chosen email draft to its recipient.",
    parameters={
        "recipient": "Recipient email address, exactly as given.",
        "subject": "Email subject line.",
        "body": "Full plain-text email body.",
    },
)
