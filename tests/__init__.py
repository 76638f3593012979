"""nfe-foundry test suite.

Test organization:
- unit/test_errors.py, unit/test_retry_policy.py: error taxonomy and retry decisions
- unit/test_http_client.py: transport over httpx.MockTransport
- unit/test_polling.py, unit/test_batch.py: 202/Location polling and batch fan-out
- unit/test_service_invoices.py, unit/test_companies_webhooks.py: resources
- unit/test_nfe_client.py, unit/test_config_env.py, unit/test_logging_cli.py: facade and ambient stack
"""
