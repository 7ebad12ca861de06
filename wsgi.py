from velocityos import create_app

app = create_app()
