from app.ecodeli import create_app

app = create_app()
