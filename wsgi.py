import os

# Force production env unless the deployment says otherwise
os.environ.setdefault("APP_ENV", "production")

from pbd import create_app  # noqa: E402

app = create_app()
