"""
Main entry point for the Flask application.

    python main.py
    open http://localhost:3000
"""
from sigma_embed import create_app

app = create_app()

if __name__ == "__main__":
    app.run(host=app.config["HOST"], port=app.config["PORT"], debug=app.config["DEBUG"])
