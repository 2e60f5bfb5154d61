from fabops import create_app

app = create_app()
