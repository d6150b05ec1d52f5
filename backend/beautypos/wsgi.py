from beautypos import create_app

app = create_app()
