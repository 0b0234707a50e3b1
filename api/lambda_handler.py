"""
Lambda entrypoint for the ASO Insight API (container image deployment).

lifespan "on" runs the startup hook on cold start, so tables exist and the
rule/intent registries are seeded before the first audit request. Point
ASO_DATABASE_URL at a shared database; the default SQLite file would live in
the function's ephemeral storage.
"""
from mangum import Mangum

from api.main import app
from config.settings import settings

handler = Mangum(app, lifespan="on", api_gateway_base_path=settings.LAMBDA_BASE_PATH)
