"""
Example 01: Schema-enforced generation with retries and repair.

Run:
    uv run python docs/library/examples/01_structured_generate.py
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel, Field

from sturdy import Client, LLMConfig


class Plan(BaseModel):
    title: str = Field(min_length=1)
    steps: list[str] = Field(min_length=2, max_length=8)


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    client = Client(LLMConfig.from_env())

    result = await client.generate(
        "Create a small onboarding plan for a new backend engineer.",
        schema=Plan,
    )

    print("model:", result.meta.model)
    print("attempts:", result.meta.attempts)
    print("repairs:", result.meta.repairs)
    print("plan:", result.data)


if __name__ == "__main__":
    asyncio.run(main())
