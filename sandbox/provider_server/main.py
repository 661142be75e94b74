from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse
from pathlib import Path
from datetime import date
import json
import os
import uuid

app = FastAPI(title="Sandbox Provider Server", version="1.0.0")
# Support both local development and Docker
DATA_DIR = Path("/provider_stub") if os.path.exists("/provider_stub") else Path(__file__).resolve().parents[1] / "provider_stub"

# Public tokens already exchanged in this process
CONSUMED_PUBLIC_TOKENS: set[str] = set()


def load(name: str) -> dict:
    return json.loads((DATA_DIR / f"{name}.json").read_text())


def provider_error(status_code: int, error_type: str, error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error_type": error_type, "error_code": error_code, "error_message": message},
    )


def item_for_access_token(access_token: str):
    item_id = access_token.removeprefix("access-sandbox-")
    return item_id, load("items").get(item_id)


def item_error(item: dict | None) -> JSONResponse | None:
    if item is None:
        return provider_error(400, "INVALID_INPUT", "INVALID_ACCESS_TOKEN", "unknown access token")
    if item["status"] == "down":
        return provider_error(503, "INSTITUTION_ERROR", "INSTITUTION_DOWN", "institution is not responding")
    if item["status"] == "login_required":
        return provider_error(400, "ITEM_ERROR", "ITEM_LOGIN_REQUIRED", "user must re-authenticate")
    return None


@app.get("/health")
def health(): return {"status": "ok"}


@app.get("/identity/session")
def get_session(authorization: str | None = Header(default=None)):
    token = (authorization or "").removeprefix("Bearer ").strip()
    user = load("sessions").get(token)
    if user is None:
        return JSONResponse(status_code=401, content={"detail": "invalid session"})
    return user


@app.post("/link/token/create")
def create_link_token(body: dict):
    client_user_id = body.get("user", {}).get("client_user_id", "")
    if client_user_id.startswith("blocked"):
        return provider_error(400, "INVALID_INPUT", "INVALID_USER", "user is not eligible for linking")
    return {
        "link_token": f"link-sandbox-{uuid.uuid4()}",
        "expiration": "2030-01-01T00:00:00Z",
        "request_id": str(uuid.uuid4()),
    }


@app.post("/item/public_token/exchange")
def exchange_public_token(body: dict):
    public_token = body.get("public_token", "")
    item_id = public_token.removeprefix("public-sandbox-")
    if public_token in CONSUMED_PUBLIC_TOKENS or item_id not in load("items"):
        return provider_error(400, "INVALID_INPUT", "INVALID_PUBLIC_TOKEN", "public token is expired or already used")
    CONSUMED_PUBLIC_TOKENS.add(public_token)
    return {"access_token": f"access-sandbox-{item_id}", "item_id": item_id}


@app.post("/accounts/get")
def get_accounts(body: dict):
    item_id, item = item_for_access_token(body.get("access_token", ""))
    error = item_error(item)
    if error is not None:
        return error
    return {"accounts": item["accounts"], "item": {"item_id": item_id}}


@app.post("/transactions/get")
def get_transactions(body: dict):
    item_id, item = item_for_access_token(body.get("access_token", ""))
    error = item_error(item)
    if error is not None:
        return error

    start = date.fromisoformat(body["start_date"])
    end = date.fromisoformat(body["end_date"])
    options = body.get("options", {})
    count = options.get("count", 100)
    offset = options.get("offset", 0)

    matching = [t for t in item["transactions"] if start <= date.fromisoformat(t["date"]) <= end]
    return {
        "accounts": item["accounts"],
        "transactions": matching[offset:offset + count],
        "total_transactions": len(matching),
        "item": {"item_id": item_id},
    }
