"""Selenium client for the bill-history portal.

One :class:`SeleniumPortal` per worker: each owns a headless Chrome with its
own temporary profile directory. :meth:`SeleniumPortal.lookup` runs the whole
page sequence for one CID and returns the raw history rows as lists of cell
texts; any failure surfaces as :class:`~app.billing.errors.FetchError`.
"""
from __future__ import annotations

import shutil
import tempfile
import time
from typing import List, Optional, Protocol

from selenium import webdriver
from selenium.common.exceptions import (
    NoAlertPresentException,
    NoSuchElementException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from . import config
from .errors import FetchError, FetchErrorKind
from .utils import log_line

CID_INPUT_ID = "ltscno"
CHALLENGE_TEXT_ID = "Billquestion"
CHALLENGE_ANSWER_ID = "Billans"
SUBMIT_BUTTON_ID = "Billsignin"
HISTORY_BUTTON_ID = "historyDivbtn"
HISTORY_TABLE_ID = "consumptionData"

Row = List[str]


class Portal(Protocol):
    def lookup(self, cid: str) -> List[Row]:
        ...

    def close(self) -> None:
        ...


def make_driver(profile_dir: str) -> WebDriver:
    """Instantiate a headless Chrome WebDriver using ``profile_dir``."""

    chrome_options = Options()
    if config.CHROME_BINARY:
        chrome_options.binary_location = config.CHROME_BINARY
    chrome_options.add_argument("--headless=new")
    chrome_options.add_argument("--no-sandbox")
    chrome_options.add_argument("--disable-dev-shm-usage")
    chrome_options.add_argument("--disable-gpu")
    chrome_options.add_argument("--window-size=1280,720")
    chrome_options.add_argument(f"--user-data-dir={profile_dir}")
    return webdriver.Chrome(options=chrome_options)


class SeleniumPortal:
    """Drive the portal's bill-history form for one worker."""

    def __init__(
        self,
        worker_id: int,
        *,
        url: Optional[str] = None,
        step_timeout: Optional[float] = None,
        settle_seconds: Optional[float] = None,
    ) -> None:
        self.worker_id = worker_id
        self.url = url or config.PORTAL_URL
        self.step_timeout = step_timeout or config.PAGE_STEP_TIMEOUT_SECONDS
        self.settle_seconds = (
            config.PAGE_SETTLE_SECONDS if settle_seconds is None else settle_seconds
        )
        self.profile_dir = tempfile.mkdtemp(prefix=f"chrome-w{worker_id}-")
        try:
            self.driver = make_driver(self.profile_dir)
        except Exception:
            shutil.rmtree(self.profile_dir, ignore_errors=True)
            raise
        log_line(f"[PORTAL] Worker {worker_id} browser started (profile={self.profile_dir})")

    def _wait(self) -> WebDriverWait:
        return WebDriverWait(self.driver, self.step_timeout)

    def _settle(self) -> None:
        if self.settle_seconds > 0:
            time.sleep(self.settle_seconds)

    def _raise_on_challenge_dialog(self) -> None:
        try:
            alert = self.driver.switch_to.alert
            text = alert.text
            alert.accept()
        except NoAlertPresentException:
            return
        raise FetchError(FetchErrorKind.CHALLENGE_REJECTED, f"Challenge validation failed: {text}")

    def _open_history(self) -> None:
        try:
            button = self._wait().until(EC.presence_of_element_located((By.ID, HISTORY_BUTTON_ID)))
            self.driver.execute_script("window.scrollBy(0, 280)")
            self._settle()
            button.click()
        except (TimeoutException, NoSuchElementException) as exc:
            raise FetchError(
                FetchErrorKind.NO_HISTORY_CONTROL, "Challenge failed or no history button"
            ) from exc

    @staticmethod
    def _cell_text(cell: WebElement) -> str:
        inputs = cell.find_elements(By.TAG_NAME, "input")
        if inputs:
            return inputs[0].get_attribute("value") or ""
        return cell.text or ""

    def _read_rows(self) -> List[Row]:
        table = self._wait().until(EC.presence_of_element_located((By.ID, HISTORY_TABLE_ID)))
        rows = table.find_elements(By.TAG_NAME, "tr")[1:]
        return [
            [self._cell_text(cell) for cell in row.find_elements(By.TAG_NAME, "td")]
            for row in rows
        ]

    def lookup(self, cid: str) -> List[Row]:
        """Submit ``cid`` and return the history table rows (header excluded)."""

        try:
            self.driver.get(self.url)
            self._settle()

            self._wait().until(EC.presence_of_element_located((By.ID, CID_INPUT_ID))).send_keys(cid)

            self._wait().until(EC.presence_of_element_located((By.ID, CHALLENGE_TEXT_ID)))
            challenge = self.driver.execute_script(
                f"return document.getElementById('{CHALLENGE_TEXT_ID}').innerText;"
            )
            self.driver.find_element(By.ID, CHALLENGE_ANSWER_ID).send_keys(str(challenge or "").strip())
            self.driver.find_element(By.ID, SUBMIT_BUTTON_ID).click()
            self._settle()

            self._raise_on_challenge_dialog()
            self._open_history()
            return self._read_rows()
        except FetchError:
            raise
        except TimeoutException as exc:
            raise FetchError(FetchErrorKind.TIMEOUT, f"Timed out waiting for page: {exc.msg or exc}") from exc
        except WebDriverException as exc:
            raise FetchError(FetchErrorKind.TIMEOUT, f"Page interaction failed: {exc.msg or exc}") from exc

    def close(self) -> None:
        try:
            self.driver.quit()
        except Exception as exc:  # noqa: BLE001
            log_line(f"[PORTAL][WARN] Worker {self.worker_id} browser quit failed: {exc}")
        finally:
            shutil.rmtree(self.profile_dir, ignore_errors=True)
        log_line(f"[PORTAL] Worker {self.worker_id} browser closed")


def make_portal(worker_id: int) -> Portal:
    """Default portal factory used by the worker pool."""

    return SeleniumPortal(worker_id)


__all__ = ["Portal", "Row", "SeleniumPortal", "make_driver", "make_portal"]
