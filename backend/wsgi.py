from debtbook import create_app

app = create_app()
