from graph_ask.mcp.server import main

main()
