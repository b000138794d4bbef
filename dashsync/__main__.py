from dashsync.main import cli

cli()
