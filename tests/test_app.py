import unittest

from fastapi.testclient import TestClient

from app import app

FORWARD = {"type": "forward"}


class PlayApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)

    def _new_session(self, **body) -> str:
        res = self.client.post("/api/sessions", json=body or {"puzzle_id": "tutorial-1"})
        self.assertEqual(res.status_code, 200, res.text)
        return res.json()["session_id"]

    def test_health_and_puzzles(self) -> None:
        self.assertEqual(self.client.get("/api/health").json(), {"ok": True})
        ids = [p["id"] for p in self.client.get("/api/puzzles").json()["puzzles"]]
        self.assertIn("tutorial-1", ids)

    def test_solve_tutorial_over_http(self) -> None:
        sid = self._new_session()
        res = self.client.post(f"/api/sessions/{sid}/program", json={"program": {"f1": [FORWARD] * 4}})
        self.assertTrue(res.json()["applied"])
        self.assertEqual(res.json()["snapshot"]["instructionsUsed"], 4)

        self.client.post(f"/api/sessions/{sid}/start")
        payload = {}
        for _ in range(4):
            payload = self.client.post(f"/api/sessions/{sid}/step").json()
        self.assertTrue(payload["finished"])
        self.assertTrue(payload["won"])
        self.assertEqual(payload["snapshot"]["status"], "won")
        self.assertEqual(payload["snapshot"]["steps"], 4)

        back = self.client.post(f"/api/sessions/{sid}/backstep").json()
        self.assertTrue(back["applied"])
        self.assertEqual(back["snapshot"]["status"], "running")
        self.assertEqual(back["snapshot"]["robot"], {"x": 3, "y": 0, "direction": "right"})

    def test_edit_and_undo(self) -> None:
        sid = self._new_session()
        body = {"function": "f1", "index": 0, "instruction": {"type": "left", "condition": "blue"}}
        res = self.client.post(f"/api/sessions/{sid}/instruction", json=body)
        self.assertEqual(res.json()["snapshot"]["program"]["f1"][0], {"type": "left", "condition": "blue"})

        res = self.client.post(f"/api/sessions/{sid}/undo")
        self.assertTrue(res.json()["applied"])
        self.assertIsNone(res.json()["snapshot"]["program"]["f1"][0])

    def test_speed_is_clamped(self) -> None:
        sid = self._new_session()
        res = self.client.post(f"/api/sessions/{sid}/speed", json={"speed": 1})
        self.assertEqual(res.json()["speed"], 25)

    def test_custom_puzzle(self) -> None:
        puzzle = {
            "id": "custom",
            "title": "Custom",
            "grid": [[{"color": "red"}, {"color": "green", "hasStar": True}]],
            "robotStart": {"position": {"x": 0, "y": 0}, "direction": "right"},
            "functionLengths": {"f1": 1},
        }
        sid = self._new_session(puzzle=puzzle)
        self.client.post(f"/api/sessions/{sid}/program", json={"program": {"f1": [FORWARD]}})
        self.client.post(f"/api/sessions/{sid}/start")
        payload = self.client.post(f"/api/sessions/{sid}/step").json()
        self.assertTrue(payload["won"])

    def test_invalid_puzzle_rejected(self) -> None:
        puzzle = {
            "id": "starless",
            "title": "Starless",
            "grid": [[{"color": "red"}]],
            "robotStart": {"position": {"x": 0, "y": 0}, "direction": "up"},
            "functionLengths": {"f1": 1},
        }
        res = self.client.post("/api/sessions", json={"puzzle": puzzle})
        self.assertEqual(res.status_code, 400)
        self.assertIn("No stars in puzzle", res.json()["detail"])

    def test_malformed_puzzle_values_rejected(self) -> None:
        puzzle = {
            "id": "broken",
            "title": "Broken",
            "grid": [[{"color": "red"}, {"color": "green", "hasStar": True}]],
            "robotStart": {"position": {"x": 0, "y": 0}, "direction": "right"},
            "functionLengths": {"f1": "abc"},
        }
        res = self.client.post("/api/sessions", json={"puzzle": puzzle})
        self.assertEqual(res.status_code, 400)

        puzzle["functionLengths"] = {"f1": 1}
        puzzle["robotStart"]["position"]["x"] = "zz"
        res = self.client.post("/api/sessions", json={"puzzle": puzzle})
        self.assertEqual(res.status_code, 400)

    def test_errors(self) -> None:
        self.assertEqual(self.client.post("/api/sessions", json={"puzzle_id": "nope"}).status_code, 404)
        self.assertEqual(self.client.post("/api/sessions", json={}).status_code, 400)
        self.assertEqual(self.client.get("/api/sessions/missing").status_code, 404)

        sid = self._new_session()
        bad = {"function": "f1", "index": 0, "instruction": {"type": "jump"}}
        self.assertEqual(self.client.post(f"/api/sessions/{sid}/instruction", json=bad).status_code, 400)
        bad_fn = {"function": "f9", "index": 0, "instruction": FORWARD}
        self.assertEqual(self.client.post(f"/api/sessions/{sid}/instruction", json=bad_fn).status_code, 400)

        self.assertEqual(self.client.delete(f"/api/sessions/{sid}").json(), {"ok": True})
        self.assertEqual(self.client.get(f"/api/sessions/{sid}").status_code, 404)


if __name__ == "__main__":
    unittest.main()
