from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

AI_SCRAPE_SCHEMA_NAME = "li_scraper_page_answers"

# Hand-authored to stay inside the JSON Schema subset accepted by Structured Outputs.
AI_SCRAPE_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "records": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "fields": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "additionalProperties": False,
                            "properties": {
                                "prompt": {"type": "string"},
                                "text": {"type": "string"},
                                "items": {"type": "array", "items": {"type": "string"}},
                            },
                            "required": ["prompt", "text", "items"],
                        },
                    },
                },
                "required": ["fields"],
            },
        },
    },
    "required": ["records"],
}


class AnswerField(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    prompt: str
    text: str
    items: list[str]


class AnswerRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    fields: list[AnswerField]


class PageAnswers(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    records: list[AnswerRecord]

    def as_mappings(self) -> list[dict[str, str | list[str]]]:
        """
        One {prompt: answer} mapping per record.

        List answers win over text when both are present; prompts are matched
        case-insensitively by the caller, so keys keep the model's spelling.
        """
        out: list[dict[str, str | list[str]]] = []
        for record in self.records:
            mapping: dict[str, str | list[str]] = {}
            for f in record.fields:
                key = f.prompt.strip()
                if not key:
                    continue
                items = [i for i in f.items if i.strip()]
                mapping[key] = items if items else f.text
            if mapping:
                out.append(mapping)
        return out
