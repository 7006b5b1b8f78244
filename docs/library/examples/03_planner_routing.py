"""
Example 03: Stateless planner for routing decisions.

Run:
    uv run python docs/library/examples/03_planner_routing.py
"""

from __future__ import annotations

import asyncio

from sturdy import Client, LLMConfig, Planner

ROUTE_SCHEMA = {
    "type": "object",
    "required": ["agent", "reason"],
    "properties": {
        "agent": {"type": "string", "enum": ["billing", "support", "sales"]},
        "reason": {"type": "string"},
    },
}


async def main() -> None:
    client = Client(LLMConfig.from_env())
    if not await client.health():
        print("backend is not reachable")
        return

    planner = Planner(client, system_prompt="You route customer messages to one team.")
    route = await planner.run(
        "Which team should handle this message?",
        context={"message": "I was charged twice for my subscription this month."},
        schema=ROUTE_SCHEMA,
    )

    print("route:", route)


if __name__ == "__main__":
    asyncio.run(main())
