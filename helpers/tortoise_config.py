import os
from dotenv import load_dotenv
from tortoise import Tortoise

load_dotenv()

MODEL_MODULES = [
    "models.auth",
    "models.website",
    "models.logs",
]


def tortoise_config(database_url: str) -> dict:
    return {
        'connections': {
            'default': database_url
        },
        "apps": {
            "models": {
                "models": [*MODEL_MODULES, "aerich.models"],
                "default_connection": "default",
            }
        },
        "use_tz": True,
        "timezone": "UTC",
    }


# read by aerich (see [tool.aerich] in pyproject.toml)
TORTOISE_ORM = tortoise_config(os.getenv("DATABASE_URL", "sqlite://db.sqlite3"))


async def init_db(database_url: str, generate_schemas: bool = False):
    await Tortoise.init(config=tortoise_config(database_url))
    if generate_schemas:
        await Tortoise.generate_schemas(safe=True)


async def close_db():
    await Tortoise.close_connections()
