from familyhub import create_app

app = create_app()
