import sys
import unittest

from fair_dice import DiceParser, Die, GameConfig, ValidationError


class TestDiceParser(unittest.TestCase):
    """
    Startup validation of die specifications:
      - fewer than three specs, a die with more than six faces, empty specs and
        non-integer faces are all configuration errors naming the bad input;
      - valid specs keep their order and may differ in face count.
    """

    def test_three_dice_parse(self):
        dice = DiceParser.parse(["1,2,3", "4,5,6", "7,8,9"])
        self.assertEqual(len(dice), 3)
        self.assertTrue(all(len(d) == 3 for d in dice))
        self.assertEqual(dice[2].faces, (7, 8, 9))

    def test_two_dice_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            DiceParser.parse(["1,2,3", "4,5,6"])
        self.assertIn("got 2", ctx.exception.message)

    def test_seven_faces_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            DiceParser.parse(["1,2,3,4,5,6,7", "1,2", "3,4"])
        self.assertIn("1,2,3,4,5,6,7", ctx.exception.message)

    def test_non_integer_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            DiceParser.parse(["1,2,3", "4,five,6", "7,8,9"])
        self.assertIn("4,five,6", ctx.exception.message)

    def test_empty_spec_rejected(self):
        with self.assertRaises(ValidationError):
            DiceParser.parse(["1,2,3", "", "7,8,9"])

    def test_blank_face_rejected(self):
        with self.assertRaises(ValidationError):
            DiceParser.parse(["1,,3", "4,5,6", "7,8,9"])

    @unittest.skipUnless(hasattr(sys, "get_int_max_str_digits"), "int() has no digit limit")
    def test_oversized_face_value(self):
        spec = "1," + "9" * 5000
        with self.assertRaises(ValidationError) as ctx:
            DiceParser.parse([spec, "4,5,6", "7,8,9"])
        self.assertIn("too many digits", ctx.exception.message)

    def test_double_sign_is_not_an_integer(self):
        with self.assertRaises(ValidationError) as ctx:
            DiceParser.parse(["1,+-2", "4,5,6", "7,8,9"])
        self.assertIn("integer values", ctx.exception.message)

    def test_negative_and_mixed_face_counts(self):
        dice = DiceParser.parse(["-3,0,3", "5", "1,2,3,4,5,6"])
        self.assertEqual(dice[0].faces, (-3, 0, 3))
        self.assertEqual(len(dice[1]), 1)
        self.assertEqual(len(dice[2]), 6)

    def test_custom_limits(self):
        cfg = GameConfig(min_dice=2, max_faces=2)
        self.assertEqual(len(DiceParser.parse(["1,2", "3,4"], cfg)), 2)
        with self.assertRaises(ValidationError):
            DiceParser.parse(["1,2,3", "3,4"], cfg)

    def test_error_text_includes_usage(self):
        text = str(ValidationError.not_enough_dice(1, 3))
        self.assertIn("Argument Error", text)
        self.assertIn("2,2,4,4,9,9 1,1,6,6,8,8 3,3,5,5,7,7", text)


class TestGameConfig(unittest.TestCase):
    """
    Overrides may loosen presentation but not the fixed rules: at least two
    dice, at least one face and 32-byte commitment keys.
    """

    def test_defaults(self):
        cfg = GameConfig()
        self.assertEqual((cfg.min_dice, cfg.max_faces, cfg.key_size), (3, 6, 32))

    def test_rejects_single_die_minimum(self):
        with self.assertRaises(ValueError):
            GameConfig(min_dice=1)

    def test_rejects_short_keys(self):
        with self.assertRaises(ValueError):
            GameConfig(key_size=16)

    def test_rejects_faceless_dice(self):
        with self.assertRaises(ValueError):
            GameConfig(max_faces=0)

    def test_longer_keys_allowed(self):
        self.assertEqual(GameConfig(key_size=64).key_size, 64)


class TestDie(unittest.TestCase):

    def test_face_wraps(self):
        die = Die((1, 2, 3))
        self.assertEqual(die.face(0), 1)
        self.assertEqual(die.face(4), 2)
        self.assertEqual(str(die), "1,2,3")

    def test_empty_die_rejected(self):
        with self.assertRaises(ValueError):
            Die(())

    def test_list_faces_frozen(self):
        die = Die([4, 5])
        self.assertEqual(die.faces, (4, 5))


if __name__ == '__main__':
    unittest.main()
