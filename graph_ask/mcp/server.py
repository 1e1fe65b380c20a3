"""
GraphAsk MCP Server

Single-tool MCP server: `talk_with_a_graph(graph_name, question)` runs the
full pipeline and returns the answer text.

Tool output:
    - the answer, when synthesis succeeded
    - the executed query and its result, when synthesis degraded
    - "Error (<kind>): <diagnostic>", when the pipeline failed
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from graph_ask.api.service import GraphAsk
from graph_ask.config.settings import AskConfig
from graph_ask.types.results import AskRequest, PipelineResult

# Load .env file for API keys and store connection
load_dotenv()

logger = logging.getLogger(__name__)

GRAPH_NAME_MAX = 100
QUESTION_MIN = 5
QUESTION_MAX = 1000

_service: GraphAsk | None = None


def get_service() -> GraphAsk:
    """Get the GraphAsk instance."""
    if _service is None:
        raise RuntimeError("GraphAsk not initialized. Call init_service() first.")
    return _service


def init_service(service: GraphAsk | None = None, config: AskConfig | None = None) -> GraphAsk:
    """Initialize the GraphAsk instance used by the tool."""
    global _service
    _service = service or GraphAsk(config)
    return _service


def validate_tool_arguments(graph_name: str, question: str) -> str | None:
    """Error message for out-of-range arguments, or None."""
    graph_name = graph_name.strip()
    question = question.strip()
    if not graph_name or len(graph_name) > GRAPH_NAME_MAX:
        return f"graph_name must be 1-{GRAPH_NAME_MAX} characters"
    if not QUESTION_MIN <= len(question) <= QUESTION_MAX:
        return f"question must be {QUESTION_MIN}-{QUESTION_MAX} characters"
    return None


def format_tool_response(result: PipelineResult) -> str:
    """Render a pipeline result as tool output text."""
    if not result.is_success:
        kind = result.failure_kind.value if result.failure_kind else "error"
        return f"Error ({kind}): {result.error}"
    if result.answer:
        return result.answer
    lines = [f"Query: {result.query}"]
    if result.result is not None:
        lines.extend(["Result:", result.result.to_text()])
    return "\n".join(lines)


async def talk_with_a_graph(graph_name: str, question: str) -> str:
    """Run one question through the pipeline."""
    if error := validate_tool_arguments(graph_name, question):
        return f"Error: {error}"
    request = AskRequest.from_question(graph_name.strip(), question.strip())
    try:
        result = await get_service().ask(request)
    except Exception as e:
        logger.exception("talk_with_a_graph failed")
        return f"Error: {e}"
    return format_tool_response(result)


# =============================================================================
# MCP Server
# =============================================================================

def create_server(name: str = "graph-ask") -> FastMCP:
    """Create the MCP server with the talk_with_a_graph tool."""
    mcp = FastMCP(name)

    @mcp.tool(name="talk_with_a_graph")
    async def talk_with_a_graph_tool(graph_name: str, question: str) -> str:
        """
        Answer a question based on the data in the given graph.

        The question is converted to a Cypher query using the graph's schema,
        executed read-only, and the result is summarized in plain language.

        Args:
            graph_name: Exact name of the graph in the database
                (e.g. "knowledge_graph", "customer_data"), 1-100 characters
            question: Natural-language question about the data, 5-1000
                characters (e.g. "Who are the top 5 customers by revenue?")

        Returns:
            The answer text, or an error description
        """
        return await talk_with_a_graph(graph_name, question)

    return mcp


async def run_server(config: AskConfig | None = None) -> None:
    """Initialize GraphAsk and serve MCP over stdio."""
    service = init_service(config=config)
    mcp = create_server()
    try:
        await mcp.run_stdio_async()
    finally:
        await service.close()


# =============================================================================
# CLI Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point for the MCP server."""
    import sys

    parser = argparse.ArgumentParser(
        description="GraphAsk MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example:
    python -m graph_ask.mcp --config ./graph_ask.toml

Claude Desktop config:
    {
        "mcpServers": {
            "graph-ask": {
                "command": "python",
                "args": ["-m", "graph_ask.mcp"],
                "env": {
                    "FALKORDB_CONNECTION": "falkor://127.0.0.1:6379",
                    "OPENAI_API_KEY": "sk-..."
                }
            }
        }
    }
""",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Path to a TOML configuration file",
    )
    parser.add_argument(
        "--model", "-m",
        default=None,
        help="Completion model (overrides configuration)",
    )

    args = parser.parse_args()

    if args.config is not None and not args.config.exists():
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    config = AskConfig.from_file(args.config) if args.config else AskConfig()
    if args.model:
        config = config.with_overrides(llm_model=args.model)
    if not config.openai_api_key:
        print(
            "Error: MCP server needs a default API key (OPENAI_API_KEY or DEFAULT_KEY)",
            file=sys.stderr,
        )
        sys.exit(1)

    # stdout carries the protocol; logs go to stderr
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    asyncio.run(run_server(config))


if __name__ == "__main__":
    main()
