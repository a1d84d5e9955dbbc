import unittest

from sales_coach.models import Utterance, WordCounters
from sales_coach.transcript import TranscriptStore, compute_talk_ratio, count_words


def _utt(role, text, is_final=True, ts=0.0):
    return Utterance(role=role, text=text, is_final=is_final, ts=ts)


class TestTalkRatio(unittest.TestCase):
    def test_zero_words_is_zero_zero(self):
        ratio = compute_talk_ratio(WordCounters(0, 0))
        self.assertEqual((ratio.seller, ratio.buyer), (0, 0))

    def test_thirty_ten_is_seventy_five_twenty_five(self):
        ratio = compute_talk_ratio(WordCounters(seller_words=30, buyer_words=10))
        self.assertEqual(ratio.to_dict(), {"seller": 75, "buyer": 25})

    def test_always_sums_to_hundred(self):
        for seller in range(0, 25):
            for buyer in range(0, 25):
                if seller == buyer == 0:
                    continue
                ratio = compute_talk_ratio(WordCounters(seller, buyer))
                self.assertEqual(ratio.seller + ratio.buyer, 100, (seller, buyer))

    def test_half_rounds_up(self):
        # 1/8 = 12.5%
        ratio = compute_talk_ratio(WordCounters(seller_words=1, buyer_words=7))
        self.assertEqual((ratio.seller, ratio.buyer), (13, 87))

    def test_only_buyer(self):
        ratio = compute_talk_ratio(WordCounters(seller_words=0, buyer_words=4))
        self.assertEqual((ratio.seller, ratio.buyer), (0, 100))


class TestTranscriptStore(unittest.TestCase):
    def test_append_is_monotonic_and_never_mutates(self):
        store = TranscriptStore()
        first = _utt("seller", "bonjour à tous", is_final=False)
        store.append(first)
        snapshot = store.utterances

        store.append(_utt("seller", "bonjour à tous et bienvenue"))
        store.append(_utt("buyer", "merci"))

        self.assertEqual(len(store), 3)
        self.assertEqual(store.utterances[:1], snapshot)
        self.assertIs(store.utterances[0], first)

    def test_counts_interim_and_final_events(self):
        store = TranscriptStore()
        store.append(_utt("seller", "on peut", is_final=False))
        store.append(_utt("seller", "on peut commencer", is_final=True))
        store.append(_utt("buyer", "oui  allez-y "))

        counters = store.word_counters()
        self.assertEqual(counters.seller_words, 5)
        self.assertEqual(counters.buyer_words, 2)

    def test_count_words_splits_on_any_whitespace(self):
        self.assertEqual(count_words("  un\tdeux\ntrois  "), 3)
        self.assertEqual(count_words(""), 0)

    def test_recent_text_prefers_final_utterances(self):
        store = TranscriptStore()
        store.append(_utt("seller", "quel est votre", is_final=False))
        store.append(_utt("seller", "quel est votre budget ?"))
        store.append(_utt("buyer", "environ dix", is_final=False))

        self.assertEqual(store.recent_text(10), "seller: quel est votre budget ?")

    def test_recent_text_falls_back_to_interim_when_nothing_final(self):
        store = TranscriptStore()
        store.append(_utt("seller", "bonjour", is_final=False))
        store.append(_utt("buyer", "bonjour à", is_final=False))
        store.append(_utt("buyer", "bonjour à vous", is_final=False))

        self.assertEqual(
            store.recent_text(200, fallback_size=2),
            "buyer: bonjour à\nbuyer: bonjour à vous",
        )

    def test_recent_text_keeps_most_recent(self):
        store = TranscriptStore()
        for i in range(5):
            store.append(_utt("buyer", f"phrase {i}"))

        self.assertEqual(store.recent_text(2), "buyer: phrase 3\nbuyer: phrase 4")

    def test_recent_text_without_final_filter(self):
        store = TranscriptStore()
        store.append(_utt("seller", "un"))
        store.append(_utt("buyer", "deux", is_final=False))

        self.assertEqual(store.recent_text(5, final_only=False), "seller: un\nbuyer: deux")

    def test_recent_text_empty_store(self):
        self.assertEqual(TranscriptStore().recent_text(40), "")


if __name__ == "__main__":
    unittest.main()
