# Quick reference commands (run from repo root). These are comments only; copy/paste as needed.

# Install the project with test dependencies (includes httpx for TestClient)
# python -m pip install -e ".[test]"

# Run the full test suite (Postgres-backed tests skip unless DATABASE_URL is set)
# python -m pytest

# Run focused test files
# python -m pytest tests/test_plans.py tests/test_billing_validation.py
# python -m pytest tests/test_security_auth.py tests/test_media.py
# python -m pytest tests/test_lifecycle.py tests/test_email_templates.py
# DATABASE_URL=postgresql://localhost/mpbs_test python -m pytest tests/test_workflows_db.py

# Start the site locally (with env vars loaded)
# python -m dotenv run -- python -m uvicorn app.api:app --reload

# Run the lifecycle worker (reminders + expiry every WORKER_INTERVAL_SECONDS)
# python main.py            (or: python main.py once / python main.py web)
# WORKER_RUN_ONCE=true python -m dotenv run -- python -m worker.main

# Trigger one batch over HTTP, the way an external scheduler does
# curl -X POST -H "Authorization: Bearer $CRON_SECRET" http://localhost:8000/internal/subscription-reminders
# curl -X POST -H "Authorization: Bearer $CRON_SECRET" http://localhost:8000/internal/expire-subscriptions

# See which reminders are due, or check SMTP settings
# python -m scripts.preview_reminders
# python -m scripts.preview_reminders --send-test you@example.com
