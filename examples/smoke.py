import asyncio

from kimi_llm.errors import AuthError
from kimi_llm.provider import KimiProvider
from kimi_llm.settings import KimiSettings
from kimi_llm.types import ChatRequest, Message


async def main() -> None:
    async with KimiProvider(settings=KimiSettings(low_speed_timeout=30)) as provider:
        try:
            await provider.authenticate()
        except AuthError as e:
            print("Not signed in:", type(e).__name__, e)
            return

        model = provider.model("moonshot-v1-8k")
        req = ChatRequest(messages=[Message(role="user", content="Say hi in three words.")])
        print("Estimated tokens:", await model.count_tokens(req))

        stream = await model.stream_text(req)
        async for text in stream:
            print(text, end="", flush=True)
        print()

        args = await model.stream_tool_use(
            req,
            "reply",
            "Return the reply as structured data",
            {"type": "object", "properties": {"words": {"type": "array", "items": {"type": "string"}}}},
        )
        print("Tool arguments:", args)


if __name__ == "__main__":
    asyncio.run(main())
