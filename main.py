import asyncio
import sys

import model_selector as ms


async def demo(query: str, prompt: str):
    print(f"query: {query}")
    for r in ms.select_models(query):
        print(f"  {r.name:<20} {r.score:.3f} {'exact' if r.exact_match else ''}")

    out = await ms.generate(query, prompt, hooks=ms.Hooks(on_fallback=print))
    print(out.result)
    print(f"answered by {out.candidate_used} after {out.fallbacks_used} fallbacks")
    for ev in out.trace:
        print(ev.op, ev.payload)

    s = ms.stream(query, prompt)
    async for chunk in s:
        print(chunk.value, end="", flush=True)
    print()


if __name__ == "__main__":
    query = sys.argv[1] if len(sys.argv) > 1 else "fast, cheap"
    asyncio.run(demo(query, "Explain quantum computing in one paragraph"))
