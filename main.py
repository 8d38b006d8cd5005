import os

from pasoapaso.main import create_app

# WSGI para gunicorn/render
app = create_app()

if __name__ == "__main__":
    # execução local
    app.run(host="127.0.0.1", port=int(os.getenv("PORT", "5000")), debug=True)
