import os
import uvicorn

if __name__ == "__main__":
    print("--- DATAPUSHER STARTUP ---")

    # Dump environment (redacted)
    for k, v in os.environ.items():
        if any(
            secret in k.lower() for secret in ["key", "pass", "secret", "url", "token"]
        ):
            print(f"{k}: [REDACTED]")
        else:
            print(f"{k}: {v}")

    port = int(os.environ.get("PORT", "8000"))

    from datapusher.main import app

    print(f"Invoking uvicorn on 0.0.0.0:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info", access_log=True)
