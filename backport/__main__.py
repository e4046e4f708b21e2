from .backport import backport_cli

if __name__ == "__main__":
    backport_cli()
