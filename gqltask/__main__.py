from gqltask.cli import cli_app

if __name__ == "__main__":
    cli_app()
