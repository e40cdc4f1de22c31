"""Generation gateway service: FastAPI app, request models and prompt templates."""
