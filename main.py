from app.main import app, engine
from app.billing import config
from app.billing.run import install_signal_handlers
from app.billing.utils import log_line
import os

if __name__ == "__main__":
    # Importing app.main prepares the data directories. An interrupt drains
    # the workers before the process exits.
    install_signal_handlers(engine, exit_after=True)
    port = int(os.environ.get("PORT", config.PORT))
    log_line(f"Server running on port {port}")
    log_line("POST /start | POST /pause | POST /resume | POST /stop | GET /status")
    app.run(host="0.0.0.0", port=port, threaded=True)
