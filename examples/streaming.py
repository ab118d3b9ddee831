"""Stream from a model that drops mid-answer; the next one restarts the answer."""
import asyncio

import model_selector as ms

POOL = [
    ms.Candidate("primary", "openai", {"chat": True}),
    ms.Candidate("backup", "anthropic", {"chat": True}),
]


async def tokens(candidate: ms.Candidate):
    words = f"{candidate.name} says hello world".split()
    for i, word in enumerate(words):
        await asyncio.sleep(0)
        if candidate.name == "primary" and i == 2:
            raise ConnectionError("connection reset by peer")
        yield word + " "


async def main():
    stream = ms.execute_streaming(
        ms.rank("chat", {}, POOL), tokens, finalize="".join, retry_delay=0
    )
    seen = []
    async with stream:
        async for chunk in stream:
            seen.append(chunk)
    return seen, await stream.result


if __name__ == "__main__":
    seen, final = asyncio.run(main())
    for chunk in seen:
        print(f"{chunk.candidate_name:>8} | {chunk.value}")
    print("final:", final.result, "via", final.candidate_used)
