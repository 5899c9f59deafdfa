"""
Web application package for the chess sparring service.

Provides a FastAPI REST API over the engine service so a browser front end
can ask for evaluations and computer moves. Run with:
    uvicorn web.app:app
"""
