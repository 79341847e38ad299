import uvicorn
import os
from dotenv import load_dotenv

# ENVIRONMENT and PORT are read here, before the app settings load .env
load_dotenv()

if __name__ == "__main__":
    # Disable reload in production
    reload = os.getenv("ENVIRONMENT") != "production"

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=reload,
        timeout_keep_alive=300,  # Generation with a local model can be slow
        timeout_graceful_shutdown=30
    )
