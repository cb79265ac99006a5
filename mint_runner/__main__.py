from gevent import monkey  # isort:skip

# Must run before anything imports `requests` or `socket`.
monkey.patch_all()  # isort:skip

from mint_runner.main import main  # noqa: E402

if __name__ == "__main__":
    main()  # pylint: disable=no-value-for-parameter
