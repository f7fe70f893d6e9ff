"""Sample session script demonstrating programmatic usage."""
import asyncio

from solc_audit.engine import DumpEngine
from solc_audit.report import FunctionView, ReportGenerator
from solc_audit.session import AuditSession, HighlightStep, SelectPath

SOURCE = "\n".join([
    "function scale(uint256 a, uint256 b) public returns (uint256) {",
    "    require(b != 0);",
    "    uint256 q = a / b;",
    "    return q * b;",
    "}",
])

DUMP = {
    "contracts": [{"id": 1, "name": "Scaler", "functions": [{"id": 2, "name": "scale"}]}],
    "analyses": {
        "Scaler": {
            "functions": [{
                "functionId": 2,
                "functionName": "scale",
                "contractName": "Scaler",
                "paths": [{
                    "exit": "return",
                    "feasible": True,
                    "statements": [
                        {"text": "require(b != 0)", "type": "assert", "nodeId": 20,
                         "ranges": {"b": {"intervals": [["1", str(2**256 - 1)]]}}},
                        {"text": "uint256 q = a / b", "type": "assign", "nodeId": 21,
                         "ranges": {"q": {"min": "0"}}},
                    ],
                    "arithChecks": [
                        {"opNode": 22, "check": "DivisionTruncation", "bound": "a % b != 0"},
                        {"opNode": 23, "check": "MulAfterDiv", "bound": "q * b != a", "opText": "q * b"},
                    ],
                }],
            }],
        }
    },
    "sources": {"2": {"source": SOURCE, "lineMap": [[2, 4, 20], [3, 4, 21], [3, 16, 22]]}},
}


async def demo_with_synthetic_dump() -> None:
    """Annotate a synthetic function and walk its only path."""
    session = AuditSession(DumpEngine(DUMP))
    await session.load()
    await session.select_function(2)
    await session.settle()
    await session.dispatch(SelectPath(path_index=0))
    await session.dispatch(HighlightStep(step_index=1))

    for line in session.annotated_lines():
        notes = [item.text for item in line.ranges]
        if line.badge is not None:
            notes.append(line.badge.text)
        glyph = line.risk.glyph if line.risk else ""
        print(f"{line.number:>3} {glyph:>2} | {line.text}  {'; '.join(notes)}")

    for row in session.watch():
        print(f"watch {row.name} = {row.domain} (step {row.last_changed_step})")

    print(ReportGenerator("Scaler").to_markdown(FunctionView.from_session(session)))


if __name__ == "__main__":
    asyncio.run(demo_with_synthetic_dump())
