"""
Example 02: Streamed tool-calling conversation.

Run:
    uv run python docs/library/examples/02_tool_conversation.py
"""

from __future__ import annotations

import asyncio

from pydantic import BaseModel, Field

from sturdy import Client, LLMConfig, tool
from sturdy.llms import StreamEvent


class SumArgs(BaseModel):
    numbers: list[float] = Field(min_length=1, max_length=50)


@tool(args_model=SumArgs, name="sum_numbers")
def sum_numbers(args: SumArgs) -> dict[str, float]:
    """Add a list of numbers."""
    return {"sum": float(sum(args.numbers))}


def show(event: StreamEvent) -> None:
    if event.type == "token":
        print(event.text, end="", flush=True)
    elif event.type == "state":
        print(f"\n[{event.state}] {event.data}")


async def main() -> None:
    client = Client(LLMConfig.from_env())

    result = await client.run_conversation(
        "You are a math tutor. Use sum_numbers whenever arithmetic is needed.",
        "Please add 2.5, 8, and -1. Then explain the answer in one sentence.",
        tools=[sum_numbers],
        max_steps=4,
        on_event=show,
    )

    print()
    print("phase:", result.phase.value)
    print("stop_reason:", result.stop_reason)
    print("steps:", result.steps)
    print("tool_calls:", len(result.tool_executions))
    print("final_text:", result.final_text)


if __name__ == "__main__":
    asyncio.run(main())
