from dex_trader.main import cli

cli()
