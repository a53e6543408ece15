import uvicorn

from sql_rate_limit.core.app_factory import create_app

app = create_app()


if __name__ == "__main__":
    uvicorn.run("sql_rate_limit.main:app", host="0.0.0.0", port=8000)
