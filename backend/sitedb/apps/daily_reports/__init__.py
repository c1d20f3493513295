"""Daily work logs (작업일지), their worker rows and site photos."""
