from setuptools import setup, find_packages

setup(
    name="consultbook",
    version="0.1",
    packages=find_packages(exclude=["tests", "tests.*", "alembic", "alembic.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0",
        "psycopg2-binary",
        "python-jose[cryptography]",
        "pydantic>=2",
        "pydantic-settings",
        "python-dotenv",  # .env loading for pydantic-settings
        "alembic",
        "arq",  # cron worker for the expiry and reminder passes
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",  # fastapi.testclient
        ],
    },
)
