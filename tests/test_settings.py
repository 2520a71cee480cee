from __future__ import annotations

from tracker.settings import Settings


def test_log_level_is_normalised() -> None:
    assert Settings(log_level="debug").log_level == "DEBUG"
    assert Settings(log_level=" warning ").log_level == "WARNING"


def test_unknown_log_level_falls_back_to_info() -> None:
    assert Settings(log_level="loud").log_level == "INFO"
    assert Settings(log_level="").log_level == "INFO"


def test_database_url_takes_precedence_over_mysql_settings() -> None:
    config = Settings(database_url="sqlite:///x.db", mysql_host="db", sqlite_path="y.db")
    assert config.resolved_database_url() == "sqlite:///x.db"


def test_mysql_settings_build_pymysql_url() -> None:
    config = Settings(
        database_url=None,
        mysql_host="db.local",
        mysql_user="tracker",
        mysql_password="p@ss",
        mysql_db="tracking_app",
    )
    url = config.resolved_database_url()
    assert url.drivername == "mysql+pymysql"
    assert url.host == "db.local"
    assert url.port == 3306
    assert url.password == "p@ss"
    assert url.database == "tracking_app"


def test_no_database_configured() -> None:
    config = Settings(database_url=None, mysql_host=None, sqlite_path=None)
    assert config.resolved_database_url() is None
