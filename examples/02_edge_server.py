# RUN: python examples/02_edge_server.py
"""Edge server: run the full HTTP app with uvicorn.

Run the server with:
    UPSTREAMS=https://api.mainnet-beta.solana.com python examples/02_edge_server.py

Then test with:
    curl -s -D - http://localhost:8787/ \
         -H "Content-Type: application/json" \
         -d '{"jsonrpc":"2.0","id":1,"method":"getSlot"}'
    open http://localhost:8787/dash
"""

import uvicorn

from sanctos_edge import EdgeConfig, create_app
from sanctos_edge.utils.logging import configure_logging

config = EdgeConfig.from_env()
configure_logging(config.log_level, json=False)
app = create_app(config)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8787)
