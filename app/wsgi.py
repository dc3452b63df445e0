from app.sommertheater import create_app

app = create_app()
