import json
import os

from src.api.main import app
from src.services.realtime import SUBSCRIPTION_TYPES

# REST routes are under /api; the WebSocket channel is documented as an extension
openapi_schema = app.openapi()

openapi_schema["x-websocket-endpoints"] = [
    {
        "path": "/ws/realtime",
        "summary": "Realtime dashboard, metric, activity, system and report updates",
        "query": ["token", "organization_id"],
        "close_codes": {
            "4401": "invalid or refresh token, unknown user",
            "4403": "inactive user or no active membership",
            "4503": "realtime disabled",
        },
        "messages": {
            "client_to_server": [
                {"action": "subscribe", "type": list(SUBSCRIPTION_TYPES)},
                {"action": "subscribe", "type": "system", "scope": "global"},
                {"action": "unsubscribe", "type": list(SUBSCRIPTION_TYPES)},
                {"action": "ping"},
            ],
            "server_to_client": [
                "connected",
                "subscribed",
                "unsubscribed",
                "pong",
                "dashboard_update",
                "metric_update",
                "system_alert",
                "user_activity",
                "report_ready",
                "error",
            ],
        },
    },
]

output_dir = "interfaces"
os.makedirs(output_dir, exist_ok=True)
output_path = os.path.join(output_dir, "openapi.json")

with open(output_path, "w") as f:
    json.dump(openapi_schema, f, indent=2)
